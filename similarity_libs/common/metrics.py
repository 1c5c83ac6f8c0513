"""Metrics collection for the similarity engine.

Provides a thin convenience wrapper around ``prometheus_client`` so the
engine can consistently record embedding, similarity, ranking, model load,
and error metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
- Decorators are provided for quick timing instrumentation
"""

import time
from typing import Any, Callable, Optional
from functools import wraps
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for the engine.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)

    Exposes typed helpers for common events to keep label sets consistent.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.operation_requests = Counter(
            'similarity_operations_total',
            'Total boundary operations',
            ['operation', 'status'],
            registry=self.registry
        )

        self.operation_duration = Histogram(
            'similarity_operation_duration_seconds',
            'Boundary operation duration',
            ['operation'],
            registry=self.registry
        )

        self.errors = Counter(
            'similarity_errors_total',
            'Errors converted to sentinels at the boundary',
            ['operation', 'error_type'],
            registry=self.registry
        )

        self.model_loads = Counter(
            'similarity_model_loads_total',
            'Model initialization attempts',
            ['weight_format', 'status'],
            registry=self.registry
        )

        self.embedding_dimension = Gauge(
            'similarity_embedding_dimension',
            'Hidden size of the currently installed model',
            registry=self.registry
        )

        self.live_allocations = Gauge(
            'similarity_live_allocations',
            'Buffers handed to the caller and not yet released',
            registry=self.registry
        )

    def record_operation(self, operation: str, status: str, duration: float) -> None:
        """Record a boundary operation.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.operation_requests.labels(operation=operation, status=status).inc()
        self.operation_duration.labels(operation=operation).observe(duration)

    def record_error(self, operation: str, error_type: str) -> None:
        self.errors.labels(operation=operation, error_type=error_type).inc()

    def record_model_load(self, weight_format: str, status: str) -> None:
        self.model_loads.labels(weight_format=weight_format, status=status).inc()

    def set_embedding_dimension(self, dimension: int) -> None:
        self.embedding_dimension.set(dimension)

    def set_live_allocations(self, count: int) -> None:
        self.live_allocations.set(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("model_load", source="hub")
    ... def load(model_id):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
