"""
Magentic Orchestrator Server

FastAPI application exposing task execution over HTTP and streaming
orchestrator events to WebSocket clients.
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
