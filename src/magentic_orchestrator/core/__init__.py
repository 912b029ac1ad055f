"""
Magentic Orchestrator Core Module

Contains the task execution engine:
- Models: plans, step executions and execution sessions
- PlanBuilder: turns the planner's reply into a validated plan
- ToolCallLoop: drives one agent through tool calls to a final answer
- RateLimitRetrier: waits out rate limits with cancellable sleeps
- CancellationToken: cooperative abort flag shared by a run
- Orchestrator: plans and executes tasks step by step
"""

from .errors import (
    ExecutionAborted,
    MaxIterationsExceeded,
    OrchestratorBusyError,
    OrchestratorError,
    PlanParseError,
    ToolDispatchError,
)
from .models import (
    AgentKind,
    Complexity,
    ExecutionSession,
    FileAttachment,
    Plan,
    PlanStep,
    RunOutcome,
    RunResult,
    SessionMessage,
    StepExecution,
    StepStatus,
    ToolCallRecord,
)
from .agents import DEFAULT_CAPABILITIES, AgentProfile, Capabilities
from .cancellation import CancellationToken
from .events import EventEmitter, EventType, ExecutionEvent
from .retry_controller import RateLimitRetrier, RetryConfig, is_rate_limit
from .resolution_loop import (
    MAX_TOOL_ITERATIONS,
    MAX_TOOL_OUTPUT_CHARS,
    LoopConfig,
    ToolCallLoop,
    truncate_tool_output,
)
from .planner import PlanBuilder, extract_json_object
from .orchestrator import Orchestrator, build_context_block

__all__ = [
    # Errors
    "OrchestratorError",
    "PlanParseError",
    "ExecutionAborted",
    "ToolDispatchError",
    "MaxIterationsExceeded",
    "OrchestratorBusyError",
    # Models
    "AgentKind",
    "Complexity",
    "StepStatus",
    "RunOutcome",
    "FileAttachment",
    "PlanStep",
    "Plan",
    "ToolCallRecord",
    "StepExecution",
    "SessionMessage",
    "ExecutionSession",
    "RunResult",
    # Agents
    "Capabilities",
    "AgentProfile",
    "DEFAULT_CAPABILITIES",
    # Execution
    "CancellationToken",
    "EventEmitter",
    "EventType",
    "ExecutionEvent",
    "RetryConfig",
    "RateLimitRetrier",
    "is_rate_limit",
    "LoopConfig",
    "ToolCallLoop",
    "truncate_tool_output",
    "MAX_TOOL_ITERATIONS",
    "MAX_TOOL_OUTPUT_CHARS",
    "PlanBuilder",
    "extract_json_object",
    "Orchestrator",
    "build_context_block",
]
