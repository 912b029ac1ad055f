"""
Agent capability table.

Each configured agent is resolved once into an AgentProfile that says which
provider drives it and what it may do (receive files, call tools, delegate
to other agents). The executor consults profiles instead of comparing agent
names.
"""

from dataclasses import dataclass, field

from ..llm.base import LLMProvider
from .models import AgentKind


@dataclass(frozen=True)
class Capabilities:
    """What an agent kind is allowed to do."""
    accepts_files: bool = False
    mcp_tools: bool = False
    local_tools: bool = False
    delegates_to: tuple[AgentKind, ...] = ()


DEFAULT_CAPABILITIES: dict[AgentKind, Capabilities] = {
    AgentKind.CLAUDE: Capabilities(
        accepts_files=True,
        mcp_tools=True,
        local_tools=True,
        delegates_to=(AgentKind.GEMINI, AgentKind.CLAUDE),
    ),
    AgentKind.GEMINI: Capabilities(),
    AgentKind.OLLAMA: Capabilities(mcp_tools=True),
    AgentKind.MANAGER: Capabilities(),
}


@dataclass
class AgentProfile:
    """
    A configured agent: its provider plus its capabilities.

    Attributes:
        kind: Agent kind plan steps refer to
        provider: Backend adapter executing the agent's turns
        capabilities: What the agent may do
        preamble: Text prepended once to each step description for this agent
    """
    kind: AgentKind
    provider: LLMProvider
    capabilities: Capabilities = field(default_factory=Capabilities)
    preamble: str | None = None

    @classmethod
    def create(
        cls,
        kind: AgentKind,
        provider: LLMProvider,
        preamble: str | None = None,
        capabilities: Capabilities | None = None,
    ) -> "AgentProfile":
        """Build a profile with the default capabilities for ``kind``."""
        return cls(
            kind=kind,
            provider=provider,
            capabilities=capabilities or DEFAULT_CAPABILITIES[kind],
            preamble=preamble,
        )

    @property
    def accepts_files(self) -> bool:
        return self.capabilities.accepts_files

    @property
    def uses_tools(self) -> bool:
        caps = self.capabilities
        return caps.mcp_tools or caps.local_tools or bool(caps.delegates_to)
