"""
Plan Builder

Asks the planning backend for a JSON execution plan and turns its free-form
reply into a validated Plan. Replies without a usable plan degrade to a
single-step plan for the default agent; backend failures are not absorbed.
"""

import json
import logging
from typing import Any

from ..llm.base import LLMProvider
from .errors import PlanParseError
from .models import AgentKind, FileAttachment, Plan
from .retry_controller import RateLimitRetrier

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Planning failed to produce a valid plan; defaulting to a single step"

AGENT_DESCRIPTIONS = {
    AgentKind.CLAUDE: (
        "Deep reasoning, code analysis and generation, PDF and document analysis, "
        "database work through MCP tools. The only agent that can read attached files."
    ),
    AgentKind.GEMINI: (
        "Web search, synthesis and summarization of text. Cannot read files."
    ),
    AgentKind.OLLAMA: (
        "Local offline model. Free but weaker; has MCP tools. Good for simple questions, "
        "basic text analysis and privacy-sensitive work. Cannot read files."
    ),
    AgentKind.MANAGER: (
        "The planner itself, for coordination or short answers. No tools, no files."
    ),
}

PLANNER_SYSTEM_PROMPT = """You are the Manager agent. You plan tasks and assign each step to the most suitable specialized agent.

Available agents:
{agents}

Rules:
- Break complex tasks into clear, ordered steps; later steps see the results of earlier ones.
- Assign every step to one of the agents listed above.
- Only agents that can read files may list files in "requiredFiles".
- Prefer cheaper agents and models when they are good enough.
- Tool outputs are truncated to 10,000 characters, so ask for precise, filtered queries.
- Give a short reasoning for each assignment and estimate the overall complexity.

Reply with a JSON object of this shape:
{{
  "goal": "Clear statement of the goal",
  "steps": [
    {{
      "step": 1,
      "description": "What to do",
      "agent": "{agent_names}",
      "model": "optional model id",
      "reasoning": "Why this agent fits",
      "requiredFiles": ["optional file names"]
    }}
  ],
  "estimatedComplexity": "low|medium|high"
}}"""


def extract_json_object(text: str) -> Any:
    """
    Return the first well-formed JSON object embedded in ``text``.

    Surrounding prose and code fences are ignored.

    Raises:
        PlanParseError: If no JSON object can be decoded
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise PlanParseError("No JSON object found in planner response")


class PlanBuilder:
    """
    Builds execution plans with the planning backend.

    Example:
        builder = PlanBuilder(manager_provider, retrier, [AgentKind.CLAUDE, AgentKind.GEMINI])
        plan = await builder.create_plan("Compare the two attached reports")
    """

    def __init__(
        self,
        provider: LLMProvider,
        retrier: RateLimitRetrier,
        available_agents: list[AgentKind],
        default_agent: AgentKind = AgentKind.CLAUDE,
        model_hints: dict[AgentKind, list[str]] | None = None,
    ):
        """
        Initialize the plan builder.

        Args:
            provider: Planning backend
            retrier: Retry controller wrapping the planning call
            available_agents: Agents plans may assign steps to
            default_agent: Agent used by the fallback plan
            model_hints: Optional model ids per agent to mention in the prompt
        """
        self.provider = provider
        self.retrier = retrier
        self.available_agents = list(available_agents)
        self.default_agent = default_agent
        self.model_hints = model_hints or {}

    def build_system_prompt(self) -> str:
        """Planning instructions listing the configured agents."""
        lines = []
        for i, agent in enumerate(self.available_agents, 1):
            line = f"{i}. {agent.value}: {AGENT_DESCRIPTIONS[agent]}"
            hints = self.model_hints.get(agent)
            if hints:
                line += f" Models: {', '.join(hints)}."
            lines.append(line)
        return PLANNER_SYSTEM_PROMPT.format(
            agents="\n".join(lines),
            agent_names="|".join(a.value for a in self.available_agents),
        )

    def build_request(self, task: str, files: list[FileAttachment] | None = None) -> str:
        parts = [
            self.build_system_prompt(),
            "",
            f"Create a detailed execution plan for the following task:\n\n{task}",
        ]
        if files:
            parts.append("")
            parts.append("Attached files:")
            parts.extend(f"- {f.original_name} ({f.mime_type})" for f in files)
        parts.append("")
        parts.append("Respond with the JSON object only, without any additional text.")
        return "\n".join(parts)

    async def create_plan(self, task: str, files: list[FileAttachment] | None = None) -> Plan:
        """
        Produce a plan for a task.

        Args:
            task: The user's task
            files: Attachments the plan may route to file-capable agents

        Returns:
            The parsed plan, or a single-step fallback plan when the reply
            holds no valid plan

        Raises:
            ExecutionAborted: If the run is cancelled
            LLMError: If the planning backend fails (after rate-limit retries)
        """
        messages = [{"role": "user", "content": self.build_request(task, files), "files": []}]
        response = await self.retrier.call(
            lambda: self.provider.complete(messages),
            label="planner",
        )

        try:
            plan = self.parse_plan(response.content)
        except PlanParseError as e:
            logger.warning(f"Falling back to single-step plan: {e}")
            return self.fallback_plan(task, files)

        logger.info(f"Plan created with {len(plan.steps)} step(s)")
        return plan

    def fallback_plan(self, task: str, files: list[FileAttachment] | None = None) -> Plan:
        """Single step for the default agent, carrying every attachment."""
        return Plan.single_step(
            task,
            self.default_agent,
            FALLBACK_REASONING,
            required_files=[f.filename for f in files] if files else None,
        )

    def parse_plan(self, text: str) -> Plan:
        """
        Extract and validate a plan from the planner's reply.

        Steps assigned to agents that are not configured are moved to the
        default agent.

        Raises:
            PlanParseError: If the reply holds no valid plan
        """
        plan = Plan.from_dict(extract_json_object(text))
        for step in plan.steps:
            if step.agent not in self.available_agents:
                logger.warning(
                    f"Step {step.step} assigned to unavailable agent {step.agent.value}; "
                    f"using {self.default_agent.value}"
                )
                step.agent = self.default_agent
                step.model = None
        return plan
