"""Health check routes."""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Health status.
    """
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness check endpoint.

    Touches the task store, so a lost database answers 503.

    Returns:
        Readiness status with task counts and live timers.
    """
    stats = await request.app.state.manager.stats()
    return {"status": "ready", "tasks": stats}
