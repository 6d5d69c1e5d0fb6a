"""
Structured Logging & Observability
Human-readable in development, machine-parseable in production.
"""
import sys
from loguru import logger
from typing import Any
from retail_queue.config import get_settings


def configure_logging():
    """
    Configure loguru sinks.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,  # Output as JSON
        )

    logger.info(f"Logging configured: level={settings.log_level}, structured={settings.enable_structured_logging}")


def log_queue_event(
    event_type: str,
    message_id: str,
    success: bool = True,
    **details: Any
):
    """
    Structured logging for message lifecycle transitions.

    Args:
        event_type: Transition name (e.g., "enqueued", "completed", "retry_scheduled")
        message_id: Queue message the event refers to
        success: Whether the transition reflects a healthy outcome
        **details: Event-specific data (type, retry_count, error, ...)

    Example:
        >>> log_queue_event(
        ...     "retry_scheduled",
        ...     message_id="7c1e...",
        ...     success=False,
        ...     retry_count=2,
        ...     error="insert failed"
        ... )
    """
    log_data = {
        "event_type": event_type,
        "message_id": message_id,
        **details
    }

    level = "INFO" if success else "WARNING"
    logger.bind(**log_data).log(level, f"Queue Event: {event_type} | {message_id}")
