"""
Health and Readiness Endpoints

Kubernetes-compatible health probes for load balancers and orchestration.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

router = APIRouter(tags=["Health"])

# API version - single source of truth
API_VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": "retail-notification-queue",
        "version": API_VERSION
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness probe - checks if service can handle requests.

    Verifies:
    - Queue service is initialized
    - Message store is reachable

    Returns 200 if ready, 503 if not ready.
    """
    try:
        queue_service = getattr(request.app.state, "queue_service", None)
        if queue_service is None:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not_ready",
                    "reason": "Queue service not initialized"
                }
            )

        await queue_service.store.ping()

        worker = getattr(request.app.state, "worker", None)
        return {
            "status": "ready",
            "store": "connected",
            "worker": "running" if worker is not None and worker.is_running else "stopped"
        }

    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "reason": str(e)
            }
        )
