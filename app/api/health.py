"""Service health route."""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
import time

from fastapi import APIRouter
from pydantic import BaseModel

_STARTED_AT = time.monotonic()

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Liveness payload."""

    status: str
    timestamp: str
    uptime: float


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Report liveness with the current time and process uptime."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=time.monotonic() - _STARTED_AT,
    )
