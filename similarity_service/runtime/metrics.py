"""Metrics collection facade for the similarity engine.

This module re-exports shared metrics utilities so the rest of the engine
can import from a stable local path (``similarity_service.runtime.metrics``)
without knowing about the underlying shared library layout.

Key APIs:
- ``MetricsCollector``: record operation, error, model load, and allocation metrics.
- ``measure_time``: timing decorator that logs duration.
"""

from similarity_libs.common.metrics import MetricsCollector, measure_time

__all__ = ["MetricsCollector", "measure_time"]
