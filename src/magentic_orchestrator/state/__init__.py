"""
Magentic Orchestrator State Module

Persistence of execution sessions.
"""

from .session_store import ExecutionSessionStore, FileLock

__all__ = ["ExecutionSessionStore", "FileLock"]
