"""
Magentic Orchestrator Server - FastAPI Application Entry Point

Builds the orchestrator from the saved settings on startup (unless one is
injected) and tears it down on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.orchestrator import Orchestrator
from ..settings.storage import SettingsStorage
from ..state.session_store import ExecutionSessionStore
from .routes import api_router
from .state import AppState
from .websocket import websocket_router

logger = logging.getLogger(__name__)


def create_app(
    orchestrator: Orchestrator | None = None,
    store: ExecutionSessionStore | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        orchestrator: Orchestrator to serve; built from saved settings when omitted
        store: Session store backing the executions endpoints; defaults to
            the orchestrator's store
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        served = orchestrator
        if served is None:
            storage = SettingsStorage()
            served = Orchestrator.from_settings(storage.load(), storage)
        sessions = store or served.store
        if sessions is None:
            storage = SettingsStorage()
            sessions = ExecutionSessionStore(storage.executions_dir(storage.load()))
        await served.initialize()
        app.state.app_state = AppState(served, sessions)
        logger.info(f"Serving agents: {', '.join(k.value for k in served.agents)}")
        yield
        # Shutdown
        await app.state.app_state.cleanup()

    app = FastAPI(
        title="Magentic Orchestrator Server",
        description="Task planning and execution across LLM agents",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")
    app.include_router(websocket_router)

    return app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8765):
    """Run the server with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_server()
