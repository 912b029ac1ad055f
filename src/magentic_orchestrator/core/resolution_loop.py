"""
Tool-Call Resolution Loop

Drives one agent until it produces a final answer:

1. Send the history to the backend (through the retry controller)
2. If the reply has no tool calls, its text is the answer
3. Otherwise execute every call in emitted order, append the assistant turn
   and one turn carrying all results, and go back to 1

The number of backend invocations per loop is bounded. Delegations to other
agents (``invoke_<agent>`` tools) run a nested loop with its own fresh
iteration budget; nesting depth is bounded separately by the dispatcher.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from ..llm.base import LLMResponse
from ..tools.dispatcher import ToolDispatcher
from ..tools.mcp_client import MCPToolHub
from ..tools.registry import ToolRegistry, ToolResult
from .agents import AgentProfile
from .cancellation import CancellationToken
from .errors import MaxIterationsExceeded, ToolDispatchError
from .models import AgentKind, FileAttachment, ToolCallRecord
from .retry_controller import RateLimitRetrier

logger = logging.getLogger(__name__)

MAX_TOOL_ITERATIONS = 20
MAX_TOOL_OUTPUT_CHARS = 10000

_TRUNCATION_SUFFIX = (
    "\n\n[Output truncated: {elided} characters elided. "
    "Request a narrower query to see the rest.]"
)
_TRUNCATION_SUFFIX_RE = re.compile(
    r"\n\n\[Output truncated: \d+ characters elided\. "
    r"Request a narrower query to see the rest\.\]"
)

# (record, agent, depth)
OnToolCallCallback = Callable[[ToolCallRecord, AgentKind, int], None]


def truncate_tool_output(text: str, limit: int = MAX_TOOL_OUTPUT_CHARS) -> str:
    """
    Cap a tool output at ``limit`` characters.

    Longer outputs keep their first ``limit`` characters followed by a note
    naming how many characters were elided. Applying the function to its own
    output returns it unchanged.
    """
    if len(text) <= limit:
        return text
    if _TRUNCATION_SUFFIX_RE.fullmatch(text[limit:]):
        return text
    return text[:limit] + _TRUNCATION_SUFFIX.format(elided=len(text) - limit)


@dataclass
class LoopConfig:
    """
    Configuration for the tool-call loop.

    Attributes:
        max_iterations: Backend invocations allowed per loop (nested loops get their own)
        max_output_chars: Per-result cap on text fed back to the backend
        max_delegation_depth: Deepest nesting level a delegation may reach
        temperature: Sampling temperature override (adapter default if None)
        max_tokens: Response length override (adapter default if None)
    """
    max_iterations: int = MAX_TOOL_ITERATIONS
    max_output_chars: int = MAX_TOOL_OUTPUT_CHARS
    max_delegation_depth: int = 3
    temperature: float | None = None
    max_tokens: int | None = None


class ToolCallLoop:
    """
    Resolves one agent turn, including any chain of tool calls.

    Example:
        loop = ToolCallLoop(agents, token, retrier)
        trace = []
        answer = await loop.run(AgentKind.CLAUDE, "Summarize the attached report", files, trace=trace)
    """

    def __init__(
        self,
        agents: dict[AgentKind, AgentProfile],
        token: CancellationToken,
        retrier: RateLimitRetrier,
        registry: ToolRegistry | None = None,
        mcp_hub: MCPToolHub | None = None,
        config: LoopConfig | None = None,
    ):
        """
        Initialize the loop.

        Args:
            agents: Configured agents keyed by kind
            token: Cancellation token of the owning run
            retrier: Retry controller wrapping each backend invocation
            registry: Local tools
            mcp_hub: Connected MCP servers
            config: Loop limits
        """
        self.agents = agents
        self.token = token
        self.retrier = retrier
        self.config = config or LoopConfig()
        self.dispatcher = ToolDispatcher(
            delegate=self._delegate,
            registry=registry,
            mcp_hub=mcp_hub,
            max_delegation_depth=self.config.max_delegation_depth,
        )

        self.on_tool_call: OnToolCallCallback | None = None

    def tools_for(self, profile: AgentProfile) -> list[dict[str, Any]]:
        """Tool definitions offered to an agent."""
        caps = profile.capabilities
        return self.dispatcher.get_definitions(
            delegates_to=caps.delegates_to,
            mcp_tools=caps.mcp_tools,
            local_tools=caps.local_tools,
            available=set(self.agents),
        )

    async def run(
        self,
        agent: AgentKind,
        instruction: str,
        files: list[FileAttachment] | None = None,
        depth: int = 0,
        trace: list[ToolCallRecord] | None = None,
    ) -> str:
        """
        Run the loop for one agent until it answers without tool calls.

        Args:
            agent: Agent to drive
            instruction: Instruction text (first user turn)
            files: Attachments, only sent to agents that accept files
            depth: Delegation nesting level (0 for plan steps)
            trace: List that receives one record per dispatched call, kept
                intact if the loop fails part-way

        Returns:
            The agent's final text

        Raises:
            ExecutionAborted: If the run is cancelled
            MaxIterationsExceeded: If the iteration bound is reached
            LLMError: If the backend fails (after rate-limit retries)
        """
        profile = self.agents.get(agent)
        if profile is None:
            raise ToolDispatchError(f"Agent not configured: {agent.value}")

        if files and not profile.accepts_files:
            logger.warning(f"Agent {agent.value} does not accept files; dropping {len(files)}")
            files = None

        history: list[dict[str, Any]] = [
            {"role": "user", "content": instruction, "files": list(files or [])}
        ]
        tools = self.tools_for(profile)
        if trace is None:
            trace = []

        for iteration in range(1, self.config.max_iterations + 1):
            response = await self._invoke(profile, history, tools)

            if not response.has_tool_calls():
                logger.info(
                    f"{agent.value} finished after {iteration} backend call(s) at depth {depth}"
                )
                return response.content

            logger.info(
                f"{agent.value} requested {len(response.tool_calls)} tool call(s) "
                f"(iteration {iteration}, depth {depth})"
            )

            results: list[dict[str, Any]] = []
            for call in response.tool_calls:
                result = await self.dispatcher.dispatch(call, depth=depth)
                content = truncate_tool_output(result.to_string(), self.config.max_output_chars)
                record = ToolCallRecord(
                    id=call.id,
                    name=call.name,
                    input=call.arguments,
                    result=self._recorded_output(result),
                    is_error=result.is_error,
                )
                trace.append(record)
                self._emit_tool_call(record, agent, depth)
                results.append({
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": content,
                    "is_error": result.is_error,
                })

            history.append({
                "role": "assistant",
                "content": response.content,
                "tool_calls": [tc.to_dict() for tc in response.tool_calls],
                "raw_content": response.raw_content,
            })
            history.append({"role": "tool_results", "results": results})

        raise MaxIterationsExceeded(self.config.max_iterations, agent=agent.value)

    async def _invoke(
        self,
        profile: AgentProfile,
        history: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> LLMResponse:
        snapshot = list(history)
        return await self.retrier.call(
            lambda: profile.provider.complete(
                snapshot,
                tools=tools or None,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            ),
            label=profile.kind.value,
        )

    async def _delegate(self, agent: AgentKind, task: str, depth: int) -> str:
        if agent not in self.agents:
            raise ToolDispatchError(
                f"Agent not configured: {agent.value}", tool_name=f"invoke_{agent.value}"
            )
        return await self.run(agent, task, depth=depth)

    def _recorded_output(self, result: ToolResult) -> Any:
        if isinstance(result.output, str):
            return truncate_tool_output(result.output, self.config.max_output_chars)
        return result.output

    def _emit_tool_call(self, record: ToolCallRecord, agent: AgentKind, depth: int) -> None:
        if self.on_tool_call:
            try:
                self.on_tool_call(record, agent, depth)
            except Exception as e:
                logger.warning(f"Tool call callback failed: {e}")
