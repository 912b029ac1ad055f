"""
Tool Dispatcher

Routes a ToolCall by name to the thing that answers it:

- ``invoke_<agent>``: delegate a sub-task to another agent (runs a nested
  tool-call loop)
- ``mcp_<server>_<tool>``: forward to an MCP server
- a registered local tool
- anything else: an ``{"error": "Unknown tool: <name>"}`` result

Dispatch never raises for tool failures; they come back as error results so
the backend can react. Cancellation always propagates, and so does a nested
loop that fails outright (iteration bound, backend error), which fails the
step that delegated.
"""

import logging
from typing import Any, Awaitable, Callable

from ..core.errors import ExecutionAborted, MaxIterationsExceeded, ToolDispatchError
from ..core.models import AgentKind
from ..llm.base import LLMError, ToolCall
from .mcp_client import MCP_PREFIX, MCPToolHub
from .registry import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

INVOKE_PREFIX = "invoke_"

# (agent, task, depth) -> final text of the nested loop
DelegateFn = Callable[[AgentKind, str, int], Awaitable[str]]

_INVOKE_DESCRIPTIONS = {
    AgentKind.GEMINI: (
        "Invoke the Gemini agent for web search, summarization, or quick information "
        "retrieval tasks. Use when you need recent information or quick summaries."
    ),
    AgentKind.CLAUDE: (
        "Invoke another Claude agent for deep reasoning, code analysis, or complex "
        "problem-solving."
    ),
    AgentKind.OLLAMA: (
        "Invoke the local Ollama agent for tasks that should stay on this machine."
    ),
    AgentKind.MANAGER: (
        "Invoke the manager agent for planning or coordination questions."
    ),
}


def invoke_tool_definition(agent: AgentKind) -> dict[str, Any]:
    """Definition of the cross-agent tool that delegates to ``agent``."""
    return {
        "name": f"{INVOKE_PREFIX}{agent.value}",
        "description": _INVOKE_DESCRIPTIONS[agent],
        "parameters": {
            "type": "object",
            "properties": {
                "task": {
                    "type": "string",
                    "description": f"The task or question for the {agent.value} agent",
                },
                "context": {
                    "type": "string",
                    "description": "Additional context to help the agent understand the task",
                },
            },
            "required": ["task"],
        },
    }


class ToolDispatcher:
    """
    Executes tool calls on behalf of the tool-call loop.

    Args:
        delegate: Coroutine running a nested loop for ``invoke_<agent>`` calls
        registry: Local tools
        mcp_hub: Connected MCP servers
        max_delegation_depth: Deepest nesting level a delegation may start;
            the top-level loop runs at depth 0
    """

    def __init__(
        self,
        delegate: DelegateFn | None = None,
        registry: ToolRegistry | None = None,
        mcp_hub: MCPToolHub | None = None,
        max_delegation_depth: int = 3,
    ):
        self.delegate = delegate
        self.registry = registry or ToolRegistry()
        self.mcp_hub = mcp_hub
        self.max_delegation_depth = max_delegation_depth

    def get_definitions(
        self,
        delegates_to: tuple[AgentKind, ...] = (),
        mcp_tools: bool = False,
        local_tools: bool = False,
        available: set[AgentKind] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Tool definitions offered to one agent.

        Args:
            delegates_to: Agents this agent may invoke
            mcp_tools: Whether to include MCP tools
            local_tools: Whether to include registry tools
            available: Agents actually configured; others are not offered
        """
        definitions = [
            invoke_tool_definition(agent)
            for agent in delegates_to
            if available is None or agent in available
        ]
        if mcp_tools and self.mcp_hub is not None:
            definitions.extend(self.mcp_hub.get_definitions())
        if local_tools:
            definitions.extend(self.registry.get_definitions())
        return definitions

    async def dispatch(self, call: ToolCall, depth: int = 0) -> ToolResult:
        """
        Execute one tool call.

        Args:
            call: The call requested by the backend
            depth: Nesting depth of the loop that received the call

        Returns:
            ToolResult (``is_error`` set on any failure)

        Raises:
            ExecutionAborted: If the run was cancelled during a delegation
            MaxIterationsExceeded: If a delegated loop hit its iteration bound
            LLMError: If a delegated agent's backend failed
        """
        logger.info(f"Dispatching tool call {call.name} ({call.id})")
        try:
            if call.name.startswith(INVOKE_PREFIX):
                output = await self._invoke_agent(call, depth)
                return ToolResult(tool_call_id=call.id, output=output)

            if call.name.startswith(MCP_PREFIX) and self.mcp_hub is not None:
                output = await self.mcp_hub.call(call.name, call.arguments)
                return ToolResult(tool_call_id=call.id, output=output)

            if self.registry.has(call.name):
                return await self.registry.execute(call.name, call.arguments, tool_call_id=call.id)

            logger.warning(f"Unknown tool requested: {call.name}")
            return ToolResult.error(call.id, f"Unknown tool: {call.name}")

        except (ExecutionAborted, MaxIterationsExceeded, LLMError):
            raise
        except ToolDispatchError as e:
            logger.warning(f"Tool call {call.name} failed: {e}")
            return ToolResult.error(call.id, str(e))
        except Exception as e:
            logger.warning(f"Tool call {call.name} failed: {type(e).__name__}: {e}")
            return ToolResult.error(call.id, f"{type(e).__name__}: {e}")

    async def _invoke_agent(self, call: ToolCall, depth: int) -> str:
        agent_name = call.name[len(INVOKE_PREFIX):]
        try:
            agent = AgentKind(agent_name)
        except ValueError:
            raise ToolDispatchError(f"Unknown tool: {call.name}", tool_name=call.name)

        if self.delegate is None:
            raise ToolDispatchError(
                f"Agent delegation is not available for {call.name}", tool_name=call.name
            )

        if depth + 1 > self.max_delegation_depth:
            raise ToolDispatchError(
                f"Delegation depth limit ({self.max_delegation_depth}) reached; "
                f"cannot invoke {agent.value}",
                tool_name=call.name,
            )

        task = call.arguments.get("task")
        if not isinstance(task, str) or not task.strip():
            raise ToolDispatchError(f"{call.name} requires a 'task' argument", tool_name=call.name)
        context = call.arguments.get("context")
        if context:
            task = f"{task}\n\nContext: {context}"

        logger.info(f"Delegating to {agent.value} at depth {depth + 1}")
        return await self.delegate(agent, task, depth + 1)
