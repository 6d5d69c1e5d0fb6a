"""
Tests for centralized configuration system.
Verifies environment variable loading and default values.
"""
import pytest
from pydantic import ValidationError

from retail_queue.config import Settings, get_settings


class TestConfigurationSystem:
    """Test suite for configuration management."""

    def test_default_values(self):
        """Verify all configuration fields have sensible defaults."""
        settings = Settings(_env_file=None)

        # Store
        assert settings.store_backend == "mongodb"
        assert settings.mongodb_database == "retail_marketplace"
        assert "replicaSet" in settings.mongodb_uri

        # Queue behaviour
        assert settings.queue_batch_size == 10
        assert settings.queue_lock_duration_seconds == 60
        assert settings.queue_max_retries == 3
        assert settings.queue_retry_delays_seconds == []
        assert settings.dedup_retention_days == 30

        # Worker
        assert settings.enable_queue_worker is True
        assert settings.queue_poll_interval_seconds == 5.0

        # Logging
        assert settings.log_level == "INFO"
        assert settings.enable_structured_logging is False

    def test_environment_variable_override(self, monkeypatch):
        """Verify environment variables override defaults."""
        get_settings.cache_clear()

        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("QUEUE_BATCH_SIZE", "50")
        monkeypatch.setenv("QUEUE_MAX_RETRIES", "5")
        monkeypatch.setenv("QUEUE_RETRY_DELAYS_SECONDS", "[10, 60, 300]")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ENVIRONMENT", "production")

        try:
            settings = get_settings()

            assert settings.store_backend == "memory"
            assert settings.queue_batch_size == 50
            assert settings.queue_max_retries == 5
            assert settings.queue_retry_delays_seconds == [10, 60, 300]
            assert settings.log_level == "DEBUG"
            assert settings.environment == "production"
        finally:
            get_settings.cache_clear()

    def test_boolean_environment_variables(self, monkeypatch):
        """Verify boolean environment variables parse correctly."""
        monkeypatch.setenv("ENABLE_QUEUE_WORKER", "false")
        monkeypatch.setenv("ENABLE_STRUCTURED_LOGGING", "true")

        settings = Settings(_env_file=None)

        assert settings.enable_queue_worker is False
        assert settings.enable_structured_logging is True

    def test_settings_singleton(self):
        """get_settings() should return the cached instance."""
        get_settings.cache_clear()

        assert get_settings() is get_settings()

        get_settings.cache_clear()

    def test_invalid_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, store_backend="redis")
