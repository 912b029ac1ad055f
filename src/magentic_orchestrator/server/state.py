"""
Application State Management

Holds the served orchestrator, the connected WebSocket clients and the
background run, and relays orchestrator events to every client.
"""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from ..core.errors import OrchestratorBusyError
from ..core.events import ExecutionEvent
from ..core.models import FileAttachment, RunResult
from ..core.orchestrator import Orchestrator
from ..state.session_store import ExecutionSessionStore

logger = logging.getLogger(__name__)


class AppState:
    """Global server state."""

    def __init__(self, orchestrator: Orchestrator, store: ExecutionSessionStore):
        self.orchestrator = orchestrator
        self.store = store
        self.run_pending = False
        self.last_result: RunResult | None = None
        self._websocket_clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._unsubscribe = orchestrator.subscribe(self.broadcast_event)

    @property
    def running(self) -> bool:
        return self.run_pending or self.orchestrator.is_running

    async def add_websocket(self, websocket: WebSocket):
        """Add a WebSocket client."""
        async with self._lock:
            self._websocket_clients.add(websocket)

    async def remove_websocket(self, websocket: WebSocket):
        """Remove a WebSocket client."""
        async with self._lock:
            self._websocket_clients.discard(websocket)

    async def broadcast_event(self, event: ExecutionEvent):
        await self.broadcast(event.to_dict())

    async def broadcast(self, message: dict[str, Any]):
        """Send a message to all connected WebSocket clients."""
        disconnected = set()

        for ws in list(self._websocket_clients):
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug(f"Dropping WebSocket client: {e}")
                disconnected.add(ws)

        for ws in disconnected:
            await self.remove_websocket(ws)

    async def run_task(self, task: str, files: list[FileAttachment]) -> None:
        """Background run; outcomes reach clients through events."""
        try:
            self.last_result = await self.orchestrator.run_task(task, files)
        except OrchestratorBusyError:
            logger.warning("Execution request ignored: another run is in progress")
        except Exception as e:
            logger.exception(f"Execution crashed: {e}")
            await self.broadcast({"type": "execution_error", "data": {"error": str(e)}})
        finally:
            self.run_pending = False

    def status(self) -> dict[str, Any]:
        session = self.orchestrator.current_session
        return {
            "running": self.running,
            "sessionId": session.id if session else None,
            "lastResult": self.last_result.to_dict() if self.last_result else None,
        }

    async def cleanup(self):
        """Cleanup resources on shutdown."""
        self._unsubscribe()
        for ws in list(self._websocket_clients):
            try:
                await ws.close()
            except RuntimeError:
                pass
        self._websocket_clients.clear()
        await self.orchestrator.close()
