"""
Execution Routes

Start a run in the background and abort it. Progress is streamed over
the WebSocket.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel, Field

from ...core.models import FileAttachment

router = APIRouter()


class ExecuteRequest(BaseModel):
    """Request model for task execution."""
    task: str = Field(..., min_length=1, description="Task description")
    files: list[str] = Field(default_factory=list, description="Local paths of files to attach")


class ExecuteResponse(BaseModel):
    """Response model for task execution."""
    status: str
    message: str
    files: list[dict[str, Any]] = Field(default_factory=list)


@router.post("/execute", response_model=ExecuteResponse)
async def execute_task(
    request: Request,
    body: ExecuteRequest,
    background_tasks: BackgroundTasks,
) -> ExecuteResponse:
    """
    Start task execution.

    Returns immediately; the execution id arrives with the
    execution_started event.
    """
    app_state = request.app.state.app_state

    if app_state.running:
        raise HTTPException(
            status_code=409,
            detail="A task is already running. Please wait or abort it first.",
        )

    files = []
    for path in body.files:
        try:
            files.append(FileAttachment.from_path(path))
        except OSError as e:
            raise HTTPException(status_code=400, detail=f"Cannot read file {path}: {e}")

    app_state.run_pending = True
    background_tasks.add_task(app_state.run_task, body.task, files)

    return ExecuteResponse(
        status="started",
        message="Task execution started",
        files=[f.to_dict() for f in files],
    )


@router.post("/execute/abort")
async def abort_execution(request: Request) -> dict[str, Any]:
    """Request cooperative abort of the current run."""
    app_state = request.app.state.app_state

    if not app_state.running:
        raise HTTPException(status_code=409, detail="No task is currently running")

    app_state.orchestrator.abort()
    return {"status": "aborting", "message": "Abort requested"}
