"""
FastAPI Application

Operational surface for the notification queue: health probes, a cron
trigger for batch processing, and operator endpoints. Also hosts the
background queue worker.
"""
import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger

from retail_queue.config import get_settings
from retail_queue.message_queue import NotificationProducer, QueueService, QueueWorker
from retail_queue.repositories import StoreConnection
from retail_queue.utils.observability import configure_logging
from retail_queue.api.routes import health_router, queue_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle: startup and shutdown events.

    Startup:
    - Build the message store and create its indexes
    - Wire queue service and producer
    - Start background queue worker (unless disabled)

    Shutdown:
    - Stop background worker gracefully
    - Close the message store connection
    """
    configure_logging()
    settings = get_settings()
    logger.info("Starting notification queue service...")

    connection = StoreConnection(settings)
    store = await connection.open()
    queue_service = QueueService(store, settings=settings)

    init_result = await queue_service.initialize()
    if not init_result.success:
        logger.error(f"Queue store initialization failed: {init_result.error}")

    app.state.connection = connection
    app.state.store = store
    app.state.queue_service = queue_service
    app.state.producer = NotificationProducer(queue_service)
    app.state.worker = None
    worker_task = None

    if settings.enable_queue_worker:
        worker = QueueWorker(
            service=queue_service,
            poll_interval=settings.queue_poll_interval_seconds,
            batch_size=settings.queue_batch_size,
            lock_duration=settings.queue_lock_duration_seconds,
            cleanup_interval=settings.queue_cleanup_interval_seconds,
        )
        app.state.worker = worker
        worker_task = asyncio.create_task(worker.start())

    logger.info("Notification queue service ready")

    yield

    logger.info("Shutting down notification queue service...")

    if app.state.worker is not None:
        await app.state.worker.stop()

    if worker_task is not None and not worker_task.done():
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            logger.info("Stopped queue worker")

    await connection.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Retail Notification Queue",
    description="Asynchronous message queue and notification dispatch for the retail marketplace",
    version="1.0.0",
    lifespan=lifespan
)

# Mount routers
app.include_router(health_router)
app.include_router(queue_router)
