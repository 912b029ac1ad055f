"""
Tool Registry

Provides registration, management, and execution of local tools that
agents can call during the tool-call loop.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """
    Result of one dispatched tool call.

    Attributes:
        tool_call_id: Id of the ToolCall this result answers
        output: Output from the tool (string or structured data)
        is_error: Whether the call failed; failures are fed back to the
            backend like any other result
    """
    tool_call_id: str
    output: Any = None
    is_error: bool = False

    @classmethod
    def error(cls, tool_call_id: str, message: str) -> "ToolResult":
        """Build a failed result in the ``{"error": ...}`` shape backends receive."""
        return cls(tool_call_id=tool_call_id, output={"error": message}, is_error=True)

    def to_string(self) -> str:
        """Convert result to string for LLM consumption."""
        if isinstance(self.output, str):
            return self.output
        if self.output is None:
            return "Success"
        try:
            return json.dumps(self.output, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(self.output)


@dataclass
class Tool:
    """
    Tool definition with execution function.

    Attributes:
        name: Unique tool name
        description: Human-readable description
        parameters: JSON Schema for tool parameters
        function: The callable to execute
        is_async: Whether the function is async
    """
    name: str
    description: str
    parameters: dict[str, Any]
    function: Callable
    is_async: bool = False

    def get_definition(self) -> dict[str, Any]:
        """Get tool definition for LLM."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolRegistry:
    """
    Registry for local tool management and execution.

    Example:
        registry = ToolRegistry()

        registry.register(Tool(
            name="word_count",
            description="Count words in a text",
            parameters={"type": "object", "properties": {"text": {"type": "string"}}},
            function=lambda text: len(text.split()),
        ))

        result = await registry.execute("word_count", {"text": "a b c"}, tool_call_id="call_1")
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If the tool name is empty, reserved, or has no function
        """
        if not tool.name:
            raise ValueError("Tool name cannot be empty")
        if tool.name.startswith(("invoke_", "mcp_")):
            raise ValueError(f"Tool name '{tool.name}' uses a reserved prefix")
        if not tool.function:
            raise ValueError(f"Tool '{tool.name}' must have a function")

        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        tool_call_id: str = "",
    ) -> ToolResult:
        """
        Execute a tool by name.

        Failures inside the tool are captured in the result rather than raised.

        Args:
            name: Tool name
            arguments: Tool arguments
            tool_call_id: Id of the call being answered

        Returns:
            ToolResult with execution outcome
        """
        tool = self._tools.get(name)
        if not tool:
            return ToolResult.error(tool_call_id, f"Unknown tool: {name}")

        try:
            if tool.is_async or asyncio.iscoroutinefunction(tool.function):
                result = await tool.function(**arguments)
            else:
                # Run sync function in executor to avoid blocking
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None,
                    lambda: tool.function(**arguments)
                )
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return ToolResult.error(tool_call_id, f"{type(e).__name__}: {e}")

        if isinstance(result, ToolResult):
            result.tool_call_id = tool_call_id
            return result
        return ToolResult(tool_call_id=tool_call_id, output=result)

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
