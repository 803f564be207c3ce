import logging

from fastapi import HTTPException
from fastapi.routing import APIRouter

from azure_blob_upload.health import get_dependency_tracker

logger = logging.getLogger("azure_blob_upload.health")
router = APIRouter(
    prefix="/health",
    tags=["health"],
    responses={404: {"description": "Not found"}},
)


@router.get("/")
async def root():
    return {"message": "Health check endpoint. Use /health/live for detailed status."}


@router.get("/ready")
async def readiness_check():
    """
    Readiness check endpoint.

    Returns 503 until the storage container has been confirmed usable.
    """
    if not get_dependency_tracker().is_application_ready():
        logger.warning("Readiness check failed: dependencies not ready")
        raise HTTPException(status_code=503, detail="Application is not ready")
    return {"status": "ready"}


@router.get("/live")
async def health_check():
    """Report the process as alive together with the state of each dependency."""
    tracker = get_dependency_tracker()
    return {
        "status": "healthy" if tracker.is_application_ready() else "degraded",
        "dependencies": tracker.get_all_dependencies(),
    }
