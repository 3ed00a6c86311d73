"""
Admin API endpoints.

Provides configuration, backend rotation state and operator reset.
"""

from typing import Any

from fastapi import APIRouter, Response, status

from keycycle.router import get_router
from keycycle.server.config import get_settings_dict

router = APIRouter()

_NOT_READY = {"error": "Router is not initialized"}


@router.get("/config")
async def get_config() -> dict[str, Any]:
    """
    Get current server configuration.

    Returns non-sensitive configuration values.
    """
    return get_settings_dict()


@router.get("/backends")
async def list_backends(response: Response) -> dict[str, Any]:
    """
    List all backends with their rotation state.
    """
    routing = get_router()
    if routing is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return _NOT_READY

    return routing.status()


@router.get("/backends/current")
async def current_backend(response: Response) -> dict[str, Any]:
    """
    Get the backend the next request will use.
    """
    routing = get_router()
    if routing is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return _NOT_READY

    return {
        "current": routing.current_backend_id(),
        "eligible": sorted(routing.eligible_backend_ids()),
        "excluded": sorted(routing.excluded_backend_ids()),
    }


@router.get("/backends/{backend_id}")
async def get_backend(backend_id: str, response: Response) -> dict[str, Any]:
    """
    Get details for a specific backend.
    """
    routing = get_router()
    if routing is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return _NOT_READY

    backend = routing.registry.get(backend_id)
    if backend is None:
        response.status_code = status.HTTP_404_NOT_FOUND
        return {"error": f"Backend '{backend_id}' not found"}

    return {**backend.to_dict(), "state": routing.registry.backend_state(backend)}


@router.post("/backends/reset")
async def reset_backends(response: Response) -> dict[str, Any]:
    """
    Readmit every excluded backend immediately.
    """
    routing = get_router()
    if routing is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return _NOT_READY

    cleared = sorted(routing.excluded_backend_ids())
    routing.reset_exclusions()
    return {"reset": True, "readmitted": cleared, "status": routing.status()}
