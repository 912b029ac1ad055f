"""
Magentic Orchestrator - task execution engine for a team of LLM agents

A manager model plans a task as ordered steps, each assigned to the agent
best suited for it. Steps run one after another; each agent may call tools
(local tools, MCP server tools, or other agents) until it produces a final
answer, and every run is persisted as a replayable execution session.

Supports:
    - Claude (Anthropic), Gemini and any OpenAI-compatible endpoint
    - Local models through Ollama
    - MCP servers over stdio
    - Rate-limit waits and user aborts at well-defined checkpoints

Example usage:
    from magentic_orchestrator import Orchestrator, SettingsStorage

    storage = SettingsStorage()
    async with Orchestrator.from_settings(storage.load(), storage) as orchestrator:
        result = await orchestrator.run_task("Summarize the latest sales figures")
        print(result.result)
"""

__version__ = "0.1.0"

# Core imports first: tools modules depend on core.errors and core.models
from .core import (
    AgentKind,
    AgentProfile,
    CancellationToken,
    EventType,
    ExecutionAborted,
    ExecutionSession,
    FileAttachment,
    Orchestrator,
    OrchestratorError,
    Plan,
    PlanStep,
    RunOutcome,
    RunResult,
    StepExecution,
    StepStatus,
)
from .llm import LLMError, LLMFactory, LLMProvider, LLMResponse, RateLimitError, ToolCall
from .settings import Settings, SettingsStorage
from .state import ExecutionSessionStore
from .tools import Tool, ToolRegistry, ToolResult

__all__ = [
    "__version__",
    # Core
    "Orchestrator",
    "AgentKind",
    "AgentProfile",
    "CancellationToken",
    "EventType",
    "ExecutionAborted",
    "ExecutionSession",
    "FileAttachment",
    "OrchestratorError",
    "Plan",
    "PlanStep",
    "RunOutcome",
    "RunResult",
    "StepExecution",
    "StepStatus",
    # LLM
    "LLMProvider",
    "LLMResponse",
    "LLMFactory",
    "LLMError",
    "RateLimitError",
    "ToolCall",
    # Settings and state
    "Settings",
    "SettingsStorage",
    "ExecutionSessionStore",
    # Tools
    "Tool",
    "ToolRegistry",
    "ToolResult",
]
