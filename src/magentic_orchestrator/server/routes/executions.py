"""
Execution History Routes
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


@router.get("/executions")
async def list_executions(request: Request) -> list[dict[str, Any]]:
    """Stored execution summaries, newest first."""
    return request.app.state.app_state.store.list()


@router.get("/executions/{execution_id}")
async def get_execution(request: Request, execution_id: str) -> dict[str, Any]:
    """One stored execution session."""
    store = request.app.state.app_state.store
    try:
        session = store.load(execution_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if session is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return session.to_dict()
