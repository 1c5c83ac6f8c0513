"""Tests for common utilities."""

import pytest
import structlog
from similarity_libs.common.config import BaseConfig, SimilarityConfig
from similarity_libs.common.logging import configure_logging
from similarity_libs.common.metrics import MetricsCollector, measure_time


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig()
    assert config.ml_env == "local"
    assert config.ml_log_level == "INFO"
    assert config.ml_log_format == "json"


def test_similarity_config():
    """Test similarity configuration defaults."""
    config = SimilarityConfig()
    assert config.ml_similarity_model_id == "sentence-transformers/all-MiniLM-L12-v2"
    assert config.ml_similarity_use_cpu is True
    assert config.ml_similarity_max_length == 512
    assert config.ml_similarity_threshold == 0.6
    assert config.ml_similarity_legacy_families == ["sentence-transformers/all-MiniLM-L6-v2"]


def test_similarity_config_from_env(monkeypatch):
    """Environment variables override defaults."""
    monkeypatch.setenv("ML_SIMILARITY_MODEL_ID", "acme/tiny-bert")
    monkeypatch.setenv("ML_SIMILARITY_USE_CPU", "false")
    monkeypatch.setenv("ML_SIMILARITY_LEGACY_FAMILIES", '["acme/old-"]')

    config = SimilarityConfig()

    assert config.ml_similarity_model_id == "acme/tiny-bert"
    assert config.ml_similarity_use_cpu is False
    assert config.ml_similarity_legacy_families == ["acme/old-"]


def test_similarity_config_rejects_bad_max_length(monkeypatch):
    monkeypatch.setenv("ML_SIMILARITY_MAX_LENGTH", "0")
    with pytest.raises(ValueError):
        SimilarityConfig()

def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "DEBUG", "console")


def test_logging_binds_service_and_environment():
    configure_logging("test-service", "INFO", "json", environment="staging")
    context = structlog.contextvars.get_contextvars()
    assert context["service"] == "test-service"
    assert context["env"] == "staging"

    configure_logging("test-service", "INFO", "json")
    assert "env" not in structlog.contextvars.get_contextvars()


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_operation("embed", "success", 0.05)
    collector.record_error("rank", "EmptyCandidateSetError")
    collector.record_model_load("pytorch", "success")

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert 'similarity_operations_total{operation="embed",status="success"} 1.0' in metrics
    assert 'similarity_errors_total{operation="rank",error_type="EmptyCandidateSetError"} 1.0' in metrics
    assert 'similarity_model_loads_total{weight_format="pytorch",status="success"} 1.0' in metrics


def test_measure_time_passes_through():
    @measure_time("double")
    def double(x):
        return x * 2

    @measure_time("explode")
    def explode():
        raise RuntimeError("boom")

    assert double(4) == 8
    with pytest.raises(RuntimeError):
        explode()
