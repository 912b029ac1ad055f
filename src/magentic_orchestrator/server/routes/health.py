"""
Health Check Routes
"""

from typing import Any

from fastapi import APIRouter, Request

from ... import __version__
from ...core.models import utc_now

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Server status, configured agents and whether a run is in progress."""
    app_state = request.app.state.app_state
    return {
        "status": "healthy",
        "timestamp": utc_now(),
        "version": __version__,
        "service": "magentic-orchestrator",
        "agents": [kind.value for kind in app_state.orchestrator.agents],
        "running": app_state.running,
    }
