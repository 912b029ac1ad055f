"""
Execution engine exceptions.

Backend failures use the LLMError hierarchy from ``llm.base``; the classes
here cover the engine's own failure modes.
"""


class OrchestratorError(Exception):
    """Base exception for execution engine errors."""
    pass


class PlanParseError(OrchestratorError):
    """The planning backend's reply did not contain a usable plan."""
    pass


class ExecutionAborted(OrchestratorError):
    """The run was cancelled by the user."""

    def __init__(self, message: str = "Execution aborted by user"):
        super().__init__(message)


class ToolDispatchError(OrchestratorError):
    """A tool call could not be routed or its target failed."""

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name


class MaxIterationsExceeded(OrchestratorError):
    """The tool-call loop hit its round bound without a final answer."""

    def __init__(self, limit: int, agent: str | None = None):
        who = f" for agent {agent}" if agent else ""
        super().__init__(
            f"Maximum tool iterations ({limit}) exceeded{who} without a final answer"
        )
        self.limit = limit
        self.agent = agent


class OrchestratorBusyError(OrchestratorError):
    """A run was requested while another run is in progress."""

    def __init__(self, message: str = "Another execution is already in progress"):
        super().__init__(message)
