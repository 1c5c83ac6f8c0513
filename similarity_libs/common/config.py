"""Configuration management for the similarity engine.

This module centralizes environment-driven configuration for the engine and
its entry points. It builds on ``pydantic_settings.BaseSettings`` so
configuration can be provided via environment variables, ``.env`` files, or
defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- Small purpose-specific subclasses to keep concerns clear

Usage
- Inject the config in your entry point: ``config = SimilarityConfig()``
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MODEL_ID = "sentence-transformers/all-MiniLM-L12-v2"
DEFAULT_MAX_LENGTH = 512
DEFAULT_THRESHOLD = 0.6


class BaseConfig(BaseSettings):
    """Base configuration shared by every entry point.

    Parameters are read from the process environment (case-insensitive, by
    field name). Defaults keep local development convenient while still
    being explicit.

    Notes
    - Add new shared settings here so downstream configs inherit them.
    - Prefer a typed field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")


class SimilarityConfig(BaseConfig):
    """Configuration for the embedding and similarity engine.

    Adds model selection, the tokenizer truncation default, the routing
    threshold used by ``match``, and the model families that only ship
    legacy PyTorch checkpoints.
    """

    ml_similarity_model_id: str = Field(default=DEFAULT_MODEL_ID)
    ml_similarity_revision: str = Field(default="main")
    ml_similarity_use_cpu: bool = Field(default=True)
    ml_similarity_max_length: int = Field(default=DEFAULT_MAX_LENGTH, gt=0)
    ml_similarity_threshold: float = Field(default=DEFAULT_THRESHOLD, ge=-1.0, le=1.0)
    ml_similarity_legacy_families: List[str] = Field(
        default_factory=lambda: ["sentence-transformers/all-MiniLM-L6-v2"]
    )
    ml_similarity_cache_dir: Optional[str] = Field(default=None)

