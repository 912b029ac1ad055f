"""
Step Executor / Orchestrator

Runs a task end to end: plan it, execute the plan's steps strictly in order
(each through the tool-call loop), persist the execution session after every
step transition, and report the outcome.

A run ends in exactly one of three ways:

- completed: every step finished
- aborted: ``abort()`` was observed at a checkpoint; the current step is
  marked aborted and no later step starts
- error: a step failed; it is marked error (its partial tool trace kept)
  and no later step starts

In every case the returned text contains the results gathered so far.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..llm.base import LLMError
from ..llm.factory import LLMFactory
from ..tools.mcp_client import MCPToolHub
from ..tools.registry import ToolRegistry
from .agents import AgentProfile
from .cancellation import CancellationToken
from .errors import ExecutionAborted, OrchestratorBusyError, ToolDispatchError
from .events import EventEmitter, EventType, Observer
from .models import (
    AgentKind,
    ExecutionSession,
    FileAttachment,
    Plan,
    PlanStep,
    RunOutcome,
    RunResult,
    StepExecution,
    StepStatus,
    utc_now,
)
from .planner import FALLBACK_REASONING, PlanBuilder
from .resolution_loop import LoopConfig, ToolCallLoop
from .retry_controller import RateLimitRetrier, RetryConfig

if TYPE_CHECKING:
    from ..state.session_store import ExecutionSessionStore

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "--- CONTEXT FROM PREVIOUS STEPS ---"
CONTEXT_FOOTER = "--- END OF CONTEXT ---"
ABORT_NOTE = "[Execution interrupted by user]"


def build_context_block(completed: list[tuple[PlanStep, str]]) -> str:
    """
    Render prior step outputs for the next step's instruction.

    Only the final text of each step is included, never its tool trace.
    """
    if not completed:
        return ""
    entries = [
        f"Step {step.step} ({step.agent.value}): {step.description}\nResult: {text}"
        for step, text in completed
    ]
    return "\n".join([CONTEXT_HEADER, "\n\n".join(entries), CONTEXT_FOOTER])


class Orchestrator:
    """
    Plans and executes tasks across the configured agents.

    One task runs at a time per instance. ``abort()`` requests cooperative
    cancellation of the current run; the next run starts with a clear flag.

    Example:
        orchestrator = Orchestrator.from_settings(SettingsStorage().load())
        await orchestrator.initialize()
        orchestrator.subscribe(lambda event: print(event.type.value))
        result = await orchestrator.run_task("Summarize the attached report", files)
        print(result.outcome, result.result)
        await orchestrator.close()
    """

    def __init__(
        self,
        agents: dict[AgentKind, AgentProfile],
        store: "ExecutionSessionStore | None" = None,
        registry: ToolRegistry | None = None,
        mcp_hub: MCPToolHub | None = None,
        loop_config: LoopConfig | None = None,
        retry_config: RetryConfig | None = None,
        default_agent: AgentKind | None = None,
        model_hints: dict[AgentKind, list[str]] | None = None,
        mcp_servers: list[Any] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            agents: Configured agents keyed by kind; MANAGER, when present,
                also acts as the planning backend
            store: ExecutionSessionStore for session snapshots (None disables persistence)
            registry: Local tools offered to agents that accept them
            mcp_hub: MCP tool hub shared by agents that accept MCP tools
            loop_config: Tool-call loop limits
            retry_config: Rate-limit retry policy
            default_agent: Agent used when planning fails
            model_hints: Model ids the planner may assign per agent
            mcp_servers: MCP server configurations connected by ``initialize()``
        """
        if not agents:
            raise ValueError("At least one agent must be configured")

        self.agents = agents
        self.store = store
        self.mcp_hub = mcp_hub
        self._mcp_servers = list(mcp_servers or [])

        self.token = CancellationToken()
        self.events = EventEmitter()
        self.retrier = RateLimitRetrier(self.token, retry_config, on_wait=self._on_rate_limit)
        self.loop = ToolCallLoop(
            agents,
            self.token,
            self.retrier,
            registry=registry,
            mcp_hub=mcp_hub,
            config=loop_config,
        )
        self.loop.on_tool_call = self._on_tool_call

        self.default_agent = self._pick_default_agent(default_agent)
        manager = agents.get(AgentKind.MANAGER)
        self.planner: PlanBuilder | None = None
        if manager is not None:
            self.planner = PlanBuilder(
                manager.provider,
                self.retrier,
                available_agents=list(agents),
                default_agent=self.default_agent,
                model_hints=model_hints,
            )

        self._running = False
        self._session: ExecutionSession | None = None
        self._chat_history: list[dict[str, Any]] = []

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        storage: Any = None,
        registry: ToolRegistry | None = None,
    ) -> "Orchestrator":
        """
        Build an orchestrator from Settings.

        Agents whose provider cannot be created (missing key, unknown
        provider) are skipped with a warning.

        Args:
            settings: Settings object
            storage: SettingsStorage used for API keys and the executions directory

        Raises:
            ValueError: If no agent could be configured
        """
        from ..settings.storage import SettingsStorage
        from ..state.session_store import ExecutionSessionStore

        storage = storage or SettingsStorage()
        agents: dict[AgentKind, AgentProfile] = {}
        model_hints: dict[AgentKind, list[str]] = {}

        for agent_settings in settings.get_enabled_agents():
            try:
                kind = AgentKind(agent_settings.name)
            except ValueError:
                logger.warning(f"Ignoring unknown agent in settings: {agent_settings.name}")
                continue

            provider_name = agent_settings.get_provider()
            try:
                provider = LLMFactory.create(
                    provider_name,
                    api_key=storage.resolve_api_key(provider_name),
                    model=agent_settings.model or None,
                    base_url=agent_settings.base_url or None,
                    system_prompt=agent_settings.system_prompt or None,
                    temperature=agent_settings.temperature,
                    max_tokens=agent_settings.max_tokens,
                )
            except (LLMError, ValueError) as e:
                logger.warning(f"Agent {kind.value} unavailable: {e}")
                continue

            agents[kind] = AgentProfile.create(
                kind, provider, preamble=agent_settings.preamble or None
            )
            if agent_settings.models:
                model_hints[kind] = list(agent_settings.models)

        if not agents:
            raise ValueError("No agents could be configured; check API keys and settings")

        try:
            default_agent = AgentKind(settings.default_agent)
        except ValueError:
            default_agent = None

        return cls(
            agents,
            store=ExecutionSessionStore(storage.executions_dir(settings)),
            registry=registry,
            mcp_hub=MCPToolHub() if settings.mcp_servers else None,
            loop_config=LoopConfig(
                max_iterations=settings.max_tool_iterations,
                max_output_chars=settings.max_tool_output_chars,
                max_delegation_depth=settings.max_delegation_depth,
            ),
            retry_config=RetryConfig(
                max_attempts=settings.rate_limit_retries,
                default_wait_seconds=settings.default_rate_limit_wait,
            ),
            default_agent=default_agent,
            model_hints=model_hints,
            mcp_servers=settings.mcp_servers,
        )

    def _pick_default_agent(self, preferred: AgentKind | None) -> AgentKind:
        if preferred is not None and preferred in self.agents:
            return preferred
        for kind in (AgentKind.CLAUDE, AgentKind.GEMINI, AgentKind.OLLAMA, AgentKind.MANAGER):
            if kind in self.agents:
                return kind
        return next(iter(self.agents))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Connect configured MCP servers."""
        if self.mcp_hub is not None and self._mcp_servers:
            await self.mcp_hub.connect(self._mcp_servers)

    async def close(self) -> None:
        """Close MCP connections and provider clients."""
        if self.mcp_hub is not None:
            await self.mcp_hub.close()
        for profile in self.agents.values():
            try:
                await profile.provider.close()
            except Exception as e:
                logger.warning(f"Error closing {profile.kind.value} provider: {e}")

    async def __aenter__(self) -> "Orchestrator":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer):
        """Register an event observer; returns an unsubscribe function."""
        return self.events.subscribe(observer)

    def abort(self, reason: str | None = None) -> None:
        """Request cancellation of the current run."""
        logger.info("Abort requested")
        self.token.cancel(reason)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_session(self) -> ExecutionSession | None:
        return self._session

    # ------------------------------------------------------------------
    # Planning and execution
    # ------------------------------------------------------------------

    async def create_plan(self, task: str, files: list[FileAttachment] | None = None) -> Plan:
        """
        Plan a task with the manager agent.

        Without a manager agent the single-step fallback plan is returned.
        """
        if self.planner is None:
            logger.warning("No manager agent configured; using single-step plan")
            return self._fallback_plan(task, files)
        return await self.planner.create_plan(task, files)

    def _fallback_plan(self, task: str, files: list[FileAttachment] | None) -> Plan:
        return Plan.single_step(
            task,
            self.default_agent,
            FALLBACK_REASONING,
            required_files=[f.filename for f in files] if files else None,
        )

    async def run_task(
        self,
        task: str,
        files: list[FileAttachment] | None = None,
        plan: Plan | None = None,
    ) -> RunResult:
        """
        Plan (unless a plan is given) and execute a task.

        Args:
            task: The user's task
            files: Attachments available to file-capable steps
            plan: Pre-built plan to execute instead of planning

        Returns:
            RunResult with the outcome and the accumulated results

        Raises:
            OrchestratorBusyError: If a run is already in progress
        """
        if self._running:
            raise OrchestratorBusyError()

        self._running = True
        self.token.reset()
        files = list(files or [])
        session = ExecutionSession()
        session.add_message("user", task, files=files)
        self._session = session

        try:
            self._emit(EventType.EXECUTION_STARTED, session, task=task)

            try:
                self.token.raise_if_cancelled()
                if plan is None:
                    plan = await self.create_plan(task, files)
                self.token.raise_if_cancelled()
            except ExecutionAborted:
                logger.info("Execution aborted during planning")
                return self._finish_aborted(session, [])
            except Exception as e:
                logger.error(f"Planning failed: {e}")
                return self._finish_error(session, [], f"Planning failed: {e}")

            session.plan = plan
            session.add_message(
                "assistant",
                f"Execution plan:\n{json.dumps(plan.to_dict(), indent=2, ensure_ascii=False)}",
            )
            self._save(session)
            self._emit(EventType.PLAN_CREATED, session, plan=plan.to_dict())

            return await self._execute_steps(session, plan, files)
        finally:
            self._running = False

    async def _execute_steps(
        self,
        session: ExecutionSession,
        plan: Plan,
        files: list[FileAttachment],
    ) -> RunResult:
        completed: list[tuple[PlanStep, str]] = []

        for step in plan.steps:
            if self.token.is_cancelled:
                logger.info(f"Execution aborted before step {step.step}")
                return self._finish_aborted(session, completed)

            profile = self.agents.get(step.agent)
            step_files = self._files_for_step(step, files, profile)
            query = self._build_query(step, profile, step_files)

            execution = StepExecution(
                step_number=step.step,
                agent=step.agent,
                model=step.model,
                description=step.description,
                query=query,
            )
            session.step_executions.append(execution)
            self._save(session)
            self._emit(
                EventType.STEP_STARTED,
                session,
                step=step.to_dict(),
                stepExecution=execution.to_dict(),
            )
            logger.info(f"Step {step.step} ({step.agent.value}) started")

            try:
                text = await self._run_step(step, profile, query, step_files, completed, execution)
            except ExecutionAborted as e:
                execution.finish(StepStatus.ABORTED, error=str(e))
                self._save(session)
                logger.info(f"Step {step.step} aborted")
                return self._finish_aborted(session, completed)
            except Exception as e:
                execution.finish(StepStatus.ERROR, error=str(e))
                session.add_message(
                    "assistant",
                    f"Step {step.step} ({step.agent.value}): {step.description}\n\nError:\n{e}",
                )
                self._save(session)
                self._emit(
                    EventType.STEP_COMPLETED,
                    session,
                    step=step.to_dict(),
                    result=f"[ERROR] {e}",
                    stepExecution=execution.to_dict(),
                )
                logger.error(f"Step {step.step} failed: {e}")
                return self._finish_error(
                    session, completed, f"Error in step {step.step}: {e}"
                )

            execution.finish(StepStatus.COMPLETED, response=text)
            completed.append((step, text))
            session.add_message(
                "assistant",
                f"Step {step.step} ({step.agent.value}): {step.description}\n\nResult:\n{text}",
            )
            self._save(session)
            self._emit(
                EventType.STEP_COMPLETED,
                session,
                step=step.to_dict(),
                result=text,
                stepExecution=execution.to_dict(),
            )
            logger.info(f"Step {step.step} completed")

        return self._finish_completed(session, completed)

    async def _run_step(
        self,
        step: PlanStep,
        profile: AgentProfile | None,
        query: str,
        step_files: list[FileAttachment],
        completed: list[tuple[PlanStep, str]],
        execution: StepExecution,
    ) -> str:
        if profile is None:
            raise ToolDispatchError(f"Agent not configured: {step.agent.value}")

        instruction = query
        context = build_context_block(completed)
        if context:
            instruction = f"{query}\n\n{context}"

        previous_model = profile.provider.model_override
        if step.model:
            logger.info(f"Step {step.step}: using model {step.model}")
            profile.provider.set_model(step.model)
        try:
            return await self.loop.run(
                step.agent,
                instruction,
                files=step_files or None,
                trace=execution.tool_calls,
            )
        finally:
            if step.model:
                profile.provider.set_model(previous_model)

    def _files_for_step(
        self,
        step: PlanStep,
        files: list[FileAttachment],
        profile: AgentProfile | None,
    ) -> list[FileAttachment]:
        if not step.required_files or not files:
            return []
        matched = [f for f in files if any(f.matches(name) for name in step.required_files)]
        if matched and (profile is None or not profile.accepts_files):
            logger.warning(
                f"Step {step.step} assigned to {step.agent.value}, which cannot read files; "
                f"dropping {', '.join(f.original_name for f in matched)}"
            )
            return []
        return matched

    @staticmethod
    def _build_query(
        step: PlanStep,
        profile: AgentProfile | None,
        step_files: list[FileAttachment],
    ) -> str:
        query = step.description
        if profile is not None and profile.preamble:
            query = f"{profile.preamble}\n\n{query}"
        if step_files:
            listing = "\n".join(f"- {f.original_name} ({f.mime_type})" for f in step_files)
            query += f"\n\nFiles:\n{listing}"
        return query

    # ------------------------------------------------------------------
    # Run endings
    # ------------------------------------------------------------------

    @staticmethod
    def _joined(completed: list[tuple[PlanStep, str]]) -> str:
        return "\n\n".join(text for _, text in completed)

    def _finish_completed(
        self, session: ExecutionSession, completed: list[tuple[PlanStep, str]]
    ) -> RunResult:
        result = self._joined(completed)
        session.add_message("assistant", f"Execution completed:\n\n{result}")
        session.outcome = RunOutcome.COMPLETED
        self._save(session)
        self._emit(EventType.EXECUTION_COMPLETED, session, result=result)
        return RunResult(RunOutcome.COMPLETED, result, session.id, session.plan)

    def _finish_aborted(
        self, session: ExecutionSession, completed: list[tuple[PlanStep, str]]
    ) -> RunResult:
        partial = self._joined(completed)
        result = f"{partial}\n\n[Execution aborted by user]" if partial else "[Execution aborted by user]"
        session.add_message("assistant", ABORT_NOTE)
        session.outcome = RunOutcome.ABORTED
        self._save(session)
        self._emit(EventType.EXECUTION_ABORTED, session, message="Execution aborted by user")
        return RunResult(RunOutcome.ABORTED, result, session.id, session.plan)

    def _finish_error(
        self,
        session: ExecutionSession,
        completed: list[tuple[PlanStep, str]],
        error: str,
    ) -> RunResult:
        partial = self._joined(completed)
        note = f"[Execution failed: {error}]"
        result = f"{partial}\n\n{note}" if partial else note
        session.add_message("assistant", note)
        session.outcome = RunOutcome.ERROR
        self._save(session)
        self._emit(EventType.EXECUTION_ERROR, session, error=error)
        return RunResult(RunOutcome.ERROR, result, session.id, session.plan)

    # ------------------------------------------------------------------
    # Direct chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        message: str,
        agent: AgentKind = AgentKind.CLAUDE,
        files: list[FileAttachment] | None = None,
    ) -> str:
        """
        Send one message to a single agent outside any plan.

        Earlier exchanges are included as conversation context.

        Raises:
            OrchestratorBusyError: If a run is in progress
            ToolDispatchError: If the agent is not configured
        """
        if self._running:
            raise OrchestratorBusyError()
        if agent not in self.agents:
            raise ToolDispatchError(f"Agent not configured: {agent.value}")

        self._running = True
        self.token.reset()
        try:
            instruction = message
            if self._chat_history:
                transcript = "\n\n".join(
                    f"{'User' if entry['role'] == 'user' else 'Assistant'}: {entry['content']}"
                    for entry in self._chat_history
                )
                instruction = f"Conversation so far:\n\n{transcript}\n\nUser: {message}"

            self._chat_history.append(
                {"role": "user", "content": message, "agent": agent.value, "timestamp": utc_now()}
            )
            reply = await self.loop.run(agent, instruction, files=files)
            self._chat_history.append(
                {"role": "assistant", "content": reply, "agent": agent.value, "timestamp": utc_now()}
            )
            return reply
        finally:
            self._running = False

    def get_history(self) -> list[dict[str, Any]]:
        return list(self._chat_history)

    def clear_history(self) -> None:
        self._chat_history.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _save(self, session: ExecutionSession) -> Path | None:
        if self.store is None:
            session.updated_at = max(session.updated_at, utc_now())
            return None
        try:
            return self.store.save(session)
        except (OSError, TimeoutError) as e:
            logger.error(f"Failed to save execution {session.id}: {e}")
            return None

    def _emit(self, event_type: EventType, session: ExecutionSession | None, **data: Any) -> None:
        self.events.emit(event_type, session_id=session.id if session else None, **data)

    def _on_rate_limit(self, wait: float, attempt: int, max_attempts: int) -> None:
        self._emit(
            EventType.RATE_LIMIT_WAIT,
            self._session,
            seconds=wait,
            attempt=attempt,
            max_retries=max_attempts,
        )

    def _on_tool_call(self, record: Any, agent: AgentKind, depth: int) -> None:
        self._emit(
            EventType.TOOL_CALL,
            self._session,
            toolCall=record.to_dict(),
            agent=agent.value,
            depth=depth,
        )
