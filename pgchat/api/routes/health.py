"""
Health Check Routes

FastAPI endpoint for service liveness.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status

from pgchat import __version__
from pgchat.api.dependencies import get_chat_store
from pgchat.models.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    """
    Basic liveness check.

    Returns 200 OK if the service is running and reports whether chat
    persistence is available.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
        chat_storage=get_chat_store() is not None,
    )
