"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from proposals import __version__
from proposals.api.schemas.common import HealthResponse
from proposals.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the application is running.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        store_backend=get_settings().store_backend,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
