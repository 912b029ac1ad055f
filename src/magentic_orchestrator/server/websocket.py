"""
WebSocket Handler

Streams orchestrator events to clients.

Events sent to client:
- connected: Initial server status
- execution_started, plan_created, step_started, step_completed,
  tool_call, rate_limit_wait, execution_aborted, execution_error,
  execution_completed: Orchestrator events
- ping: Keep-alive when the client is quiet

Messages received from client:
- ping: Answered with pong
- get_status: Answered with the current status
- abort: Abort the current run
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    app_state = websocket.app.state.app_state
    await app_state.add_websocket(websocket)

    await websocket.send_json({
        "type": "connected",
        "data": app_state.status(),
    })

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30.0)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "ping"})
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "data": {"message": "Invalid JSON"}})
                continue
            await handle_client_message(websocket, app_state, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        await app_state.remove_websocket(websocket)


async def handle_client_message(websocket: WebSocket, app_state: Any, message: Any):
    """Handle messages received from client."""
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        await websocket.send_json({"type": "pong"})

    elif msg_type == "get_status":
        await websocket.send_json({"type": "status", "data": app_state.status()})

    elif msg_type == "abort":
        app_state.orchestrator.abort()
        await websocket.send_json({"type": "aborting", "data": app_state.status()})

    else:
        await websocket.send_json({
            "type": "error",
            "data": {"message": f"Unknown message type: {msg_type}"},
        })


websocket_router = router
