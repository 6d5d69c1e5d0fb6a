"""
Centralized Configuration System
Environment-aware settings for the queue, its store and the worker.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )
    """
    Queue configuration.
    Loads from environment variables with sensible defaults.
    """

    # ============================================
    # STORE
    # ============================================
    store_backend: Literal["mongodb", "memory"] = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017/?replicaSet=rs0"
    mongodb_database: str = "retail_marketplace"
    mongodb_max_pool_size: int = 10
    mongodb_min_pool_size: int = 1
    mongodb_server_selection_timeout_ms: int = 5000

    # ============================================
    # QUEUE BEHAVIOUR
    # ============================================
    queue_batch_size: int = 10
    queue_lock_duration_seconds: int = 60   # Lease length per claimed message
    queue_max_retries: int = 3
    queue_retry_delays_seconds: list[int] = []  # Empty = retry on next poll
    dedup_retention_days: int = 30

    # ============================================
    # WORKER
    # ============================================
    enable_queue_worker: bool = True
    queue_poll_interval_seconds: float = 5.0
    queue_cleanup_interval_seconds: float = 3600.0

    # ============================================
    # LOGGING
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "test", "staging", "production"] = "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()
