"""
Queue Endpoints

Cron trigger for batch processing plus operator tools for inspecting and
replaying failed messages.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from retail_queue.message_queue.service import QueueService
from retail_queue.models.message import MessageType

router = APIRouter(prefix="/queue", tags=["Queue"])


def _service(request: Request) -> QueueService:
    return request.app.state.queue_service


def _error(error: Optional[str], status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error}
    )


@router.post("/process")
async def process_batch(
    request: Request,
    batch_size: Annotated[Optional[int], Query(ge=1, le=500)] = None,
    lock_duration: Annotated[Optional[int], Query(ge=1)] = None,
    message_types: Annotated[Optional[list[MessageType]], Query()] = None,
):
    """
    Process one batch of queued messages.

    Intended for an external scheduler (cron) when the in-process worker
    is disabled.
    """
    result = await _service(request).process_next_batch(
        batch_size=batch_size,
        lock_duration=lock_duration,
        message_types=message_types,
    )

    if not result.success:
        return _error(result.error)

    return {"status": "ok", "processed_count": result.processed_count}


@router.post("/cleanup")
async def cleanup_processed(
    request: Request,
    older_than_days: Annotated[Optional[int], Query(ge=0)] = None,
):
    """Delete deduplication records older than the retention window."""
    result = await _service(request).cleanup_processed_messages(older_than_days)

    if not result.success:
        return _error(result.error)

    return {"status": "ok", "deleted_count": result.deleted_count}


@router.get("/metrics")
async def queue_metrics(request: Request):
    """
    Get message queue metrics.

    Returns counts of pending, processing, completed and failed messages
    and the size of the deduplication index.
    """
    result = await _service(request).get_metrics()

    if not result.success:
        return _error(result.error)

    return {"status": "ok", "metrics": result.metrics.model_dump()}


@router.get("/failed")
async def failed_messages(
    request: Request,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
):
    """List messages that exhausted their retries."""
    result = await _service(request).get_failed_messages(limit=limit)

    if not result.success:
        return _error(result.error)

    return {
        "status": "ok",
        "messages": [message.model_dump(mode="json") for message in result.messages]
    }


@router.post("/failed/{message_id}/retry")
async def retry_failed(request: Request, message_id: str):
    """Move a failed message back to pending with its retry count reset."""
    result = await _service(request).retry_failed_message(message_id)

    if not result.success:
        not_found = result.error is not None and result.error.startswith("No failed message")
        return _error(result.error, status_code=404 if not_found else 500)

    return {"status": "ok", "message_id": message_id}
