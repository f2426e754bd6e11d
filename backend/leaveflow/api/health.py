import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from leaveflow.config import get_settings
from leaveflow.db import SessionDep
from leaveflow.services.outbox import count_pending

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "error"]
    version: str
    environment: str
    pending_notifications: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    """Return the health status of the API service and its outbox backlog."""
    settings = get_settings()
    status: Literal["ok", "degraded", "error"] = "ok"
    pending: int | None = None

    try:
        await session.execute(text("SELECT 1"))
        pending = await count_pending(session)
    except Exception:
        logger.exception("Health check: database connectivity failed")
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
        pending_notifications=pending,
    )
