"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from batchsim.api.v1 import batch as batch_api

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, current batch state, and system info."""
    coordinator = batch_api.get_coordinator()
    return {
        "status": "healthy" if coordinator is not None else "starting",
        "generation": coordinator.generation if coordinator is not None else None,
        "jobs": len(coordinator.jobs) if coordinator is not None else 0,
        "submitting": coordinator.submitting if coordinator is not None else False,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
