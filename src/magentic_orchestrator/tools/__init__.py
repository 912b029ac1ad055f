"""
Magentic Orchestrator Tools Module

Tools agents can call from inside the tool-call loop.

Key Components:
- ToolDispatcher: Routes tool calls (agent delegation, MCP, local tools)
- ToolRegistry: Local tool registration and execution
- MCPToolHub: MCP server connections exposed as ``mcp_<server>_<tool>`` tools
"""

from .dispatcher import ToolDispatcher, invoke_tool_definition
from .mcp_client import MCPToolHub, mcp_tool_name, split_mcp_tool_name
from .registry import Tool, ToolRegistry, ToolResult

__all__ = [
    "MCPToolHub",
    "Tool",
    "ToolDispatcher",
    "ToolRegistry",
    "ToolResult",
    "invoke_tool_definition",
    "mcp_tool_name",
    "split_mcp_tool_name",
]
