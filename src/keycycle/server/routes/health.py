"""
Health check endpoints.

Provides liveness, readiness, and a rotation summary.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Response, status

from keycycle import __version__
from keycycle.router import get_router
from keycycle.server.config import get_settings

router = APIRouter()


def _now() -> str:
    return datetime.now(UTC).isoformat()


@router.get("/live")
async def liveness() -> dict[str, str]:
    """
    Liveness probe.

    Returns 200 if the server is running.
    """
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
async def readiness(response: Response) -> dict[str, Any]:
    """
    Readiness probe.

    Returns 200 if at least one backend is eligible for the next request.
    """
    routing = get_router()
    eligible = sorted(routing.eligible_backend_ids()) if routing else []
    is_ready = bool(eligible)

    if not is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if is_ready else "not_ready",
        "timestamp": _now(),
        "backends": {
            "total": len(routing.registry.backends) if routing else 0,
            "eligible": len(eligible),
            "excluded": len(routing.excluded_backend_ids()) if routing else 0,
        },
    }


@router.get("")
async def health_summary() -> dict[str, Any]:
    """
    Overall health summary.

    Returns a summary of server and rotation health.
    """
    settings = get_settings()
    routing = get_router()

    if routing is None:
        overall = "unhealthy"
        backends: dict[str, Any] = {"total": 0, "eligible": [], "excluded": [], "current": None}
    else:
        eligible = sorted(routing.eligible_backend_ids())
        excluded = sorted(routing.excluded_backend_ids())
        if eligible and not excluded:
            overall = "healthy"
        elif eligible:
            overall = "degraded"
        else:
            overall = "unhealthy"
        backends = {
            "total": len(routing.registry.backends),
            "eligible": eligible,
            "excluded": excluded,
            "current": routing.current_backend_id(),
            "cooldown_remaining": routing.registry.cooldown_remaining(),
        }

    return {
        "status": overall,
        "server": {
            "status": "running",
            "version": __version__,
            "host": settings.server.host,
            "port": settings.server.port,
        },
        "backends": backends,
        "timestamp": _now(),
    }
