"""
Settings data models for Magentic Orchestrator.

This module defines all configuration-related data classes including:
- AgentSettings: Provider configuration for one agent kind
- MCPServerSettings: An MCP server launched over stdio
- Settings: Main settings class aggregating all configuration options
"""

from dataclasses import dataclass, field


@dataclass
class AgentSettings:
    """
    Configuration for one agent.

    Attributes:
        name: Agent kind ("claude", "gemini", "ollama", "manager").
        enabled: Whether plans may use this agent.
        provider: LLM provider driving the agent (defaults per agent kind).
        model: Model to use (empty string for provider default).
        base_url: Custom API endpoint (empty string for provider default).
        system_prompt: System prompt sent with every request.
        temperature: Sampling temperature.
        max_tokens: Maximum tokens per response.
        preamble: Text prepended to every step description for this agent,
            e.g. a compact database schema excerpt.
        models: Model ids the planner may choose between for this agent.
    """

    name: str
    enabled: bool = True
    provider: str = ""
    model: str = ""
    base_url: str = ""
    system_prompt: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096
    preamble: str = ""
    models: list[str] = field(default_factory=list)

    def get_provider(self) -> str:
        """Provider name, falling back to the agent's natural provider."""
        if self.provider:
            return self.provider
        return "claude" if self.name == "manager" else self.name


@dataclass
class MCPServerSettings:
    """
    An MCP server started as a subprocess.

    Attributes:
        name: Server name used in tool names (``mcp_<name>_<tool>``); no underscores.
        command: Executable to launch.
        args: Command-line arguments.
        env: Extra environment variables.
    """

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


def _default_agents() -> list[AgentSettings]:
    return [
        AgentSettings(
            name="manager",
            model="claude-sonnet-4-5-20250929",
            temperature=0.3,
            max_tokens=4096,
        ),
        AgentSettings(
            name="claude",
            max_tokens=8192,
            models=["claude-haiku-4-5-20251001", "claude-sonnet-4-5-20250929"],
        ),
        AgentSettings(name="gemini", max_tokens=8192),
        AgentSettings(name="ollama", enabled=False),
    ]


@dataclass
class Settings:
    """
    Global settings for Magentic Orchestrator.

    Attributes:
        agents: Configured agents.
        default_agent: Agent used when planning fails.
        mcp_servers: MCP servers whose tools agents may call.
        executions_dir: Where execution sessions are stored
            (empty string for ``<config dir>/executions``).
        max_tool_iterations: Backend calls allowed per tool-call loop.
        max_tool_output_chars: Cap on each tool output fed back to a backend.
        max_delegation_depth: Deepest nesting of agent-to-agent delegation.
        rate_limit_retries: Attempts per backend call when rate limited.
        default_rate_limit_wait: Wait (seconds) when the provider names none.
        log_level: Logging level for CLI and server.
    """

    agents: list[AgentSettings] = field(default_factory=_default_agents)
    default_agent: str = "claude"
    mcp_servers: list[MCPServerSettings] = field(default_factory=list)
    executions_dir: str = ""

    max_tool_iterations: int = 20
    max_tool_output_chars: int = 10000
    max_delegation_depth: int = 3
    rate_limit_retries: int = 3
    default_rate_limit_wait: float = 60.0

    log_level: str = "INFO"

    def get_enabled_agents(self) -> list[AgentSettings]:
        """Return a list of all enabled agents."""
        return [agent for agent in self.agents if agent.enabled]

    def get_agent(self, name: str) -> AgentSettings | None:
        """Return an agent configuration by name."""
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None
