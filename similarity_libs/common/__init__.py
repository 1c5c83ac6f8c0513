"""Common utilities shared by the engine and its entry points.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers and decorators.

Import pattern:
- from similarity_libs.common.config import SimilarityConfig
- from similarity_libs.common.logging import configure_logging
"""
