"""
Execution data model for Magentic Orchestrator.

Defines the plan produced by the planning backend, the per-step execution
record, and the execution session that is persisted after every step.
Serialization uses the camelCase keys of the JSON wire format so that
persisted sessions and plans stay readable by the dashboard.
"""

import mimetypes
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import PlanParseError


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def generate_execution_id() -> str:
    """Generate a session id such as ``exec-1718000000000-k3j9x0a1b``."""
    return f"exec-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


class AgentKind(str, Enum):
    """Backends a plan step can be assigned to."""
    CLAUDE = "claude"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    MANAGER = "manager"


class Complexity(str, Enum):
    """Advisory plan complexity estimate."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepStatus(str, Enum):
    """Step execution state machine: executing -> completed | error | aborted."""
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not StepStatus.EXECUTING


class RunOutcome(str, Enum):
    """Terminal outcome of a whole run."""
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass
class FileAttachment:
    """
    A file uploaded alongside a task.

    Attributes:
        filename: Stored (unique) file name
        original_name: Name the user uploaded the file under
        path: Local path of the stored file
        mime_type: MIME type used to pick how adapters attach it
        size: Size in bytes
        uploaded_at: Upload timestamp
    """
    filename: str
    original_name: str
    path: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    uploaded_at: str | None = None

    def matches(self, name: str) -> bool:
        """Check whether a plan's required file name refers to this file."""
        return name in (self.filename, self.original_name)

    @classmethod
    def from_path(cls, path: str | Path) -> "FileAttachment":
        """Describe a local file as an attachment."""
        file_path = Path(path).expanduser().resolve()
        mime_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            filename=file_path.name,
            original_name=file_path.name,
            path=str(file_path),
            mime_type=mime_type or "application/octet-stream",
            size=file_path.stat().st_size,
            uploaded_at=utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "filename": self.filename,
            "originalName": self.original_name,
            "path": self.path,
            "mimeType": self.mime_type,
            "size": self.size,
        }
        if self.uploaded_at:
            data["uploadedAt"] = self.uploaded_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileAttachment":
        return cls(
            filename=data["filename"],
            original_name=data.get("originalName", data["filename"]),
            path=data["path"],
            mime_type=data.get("mimeType", "application/octet-stream"),
            size=data.get("size", 0),
            uploaded_at=data.get("uploadedAt"),
        )


@dataclass
class PlanStep:
    """
    One step of a plan, bound to a backend.

    Attributes:
        step: 1-based step number, unique within the plan
        description: Instruction sent to the assigned backend
        agent: Backend that executes this step
        reasoning: Human-readable justification (display only)
        model: Optional model selector for the backend
        required_files: Attachment names this step needs (file-capable agents only)
    """
    step: int
    description: str
    agent: AgentKind
    reasoning: str = ""
    model: str | None = None
    required_files: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "step": self.step,
            "description": self.description,
            "agent": self.agent.value,
            "reasoning": self.reasoning,
        }
        if self.model:
            data["model"] = self.model
        if self.required_files:
            data["requiredFiles"] = list(self.required_files)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: int = 1) -> "PlanStep":
        """
        Build a step from its wire representation.

        Raises:
            PlanParseError: If the step is not a well-formed object
        """
        if not isinstance(data, dict):
            raise PlanParseError(f"Plan step {position} is not an object")

        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            raise PlanParseError(f"Plan step {position} has no description")

        try:
            agent = AgentKind(str(data.get("agent", "")).strip().lower())
        except ValueError:
            raise PlanParseError(
                f"Plan step {position} names unknown agent: {data.get('agent')!r}"
            )

        try:
            number = int(data.get("step", position))
        except (TypeError, ValueError):
            number = position

        required = data.get("requiredFiles")
        if required is not None and not isinstance(required, list):
            required = [str(required)]

        model = data.get("model")
        return cls(
            step=number,
            description=description,
            agent=agent,
            reasoning=str(data.get("reasoning", "")),
            model=str(model) if model else None,
            required_files=[str(f) for f in required] if required else None,
        )


@dataclass
class Plan:
    """
    Ordered execution plan produced once per task.

    Step order is fixed at creation time. Step numbers are expected to be a
    dense 1-based sequence, but gaps are tolerated.
    """
    goal: str
    steps: list[PlanStep]
    estimated_complexity: Complexity = Complexity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "steps": [step.to_dict() for step in self.steps],
            "estimatedComplexity": self.estimated_complexity.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Plan":
        """
        Validate and build a plan from the planner's JSON payload.

        Raises:
            PlanParseError: If the payload does not have the plan shape
        """
        if not isinstance(data, dict):
            raise PlanParseError("Plan payload is not a JSON object")

        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise PlanParseError("Plan has no steps")

        steps = [PlanStep.from_dict(item, position=i) for i, item in enumerate(raw_steps, 1)]

        seen: set[int] = set()
        for step in steps:
            if step.step in seen:
                raise PlanParseError(f"Duplicate step number: {step.step}")
            seen.add(step.step)

        try:
            complexity = Complexity(str(data.get("estimatedComplexity", "medium")).lower())
        except ValueError:
            complexity = Complexity.MEDIUM

        return cls(
            goal=str(data.get("goal", "")),
            steps=steps,
            estimated_complexity=complexity,
        )

    @classmethod
    def single_step(
        cls,
        task: str,
        agent: AgentKind,
        reasoning: str,
        required_files: list[str] | None = None,
    ) -> "Plan":
        """Build the one-step plan used when planning fails."""
        step = PlanStep(
            step=1,
            description=task,
            agent=agent,
            reasoning=reasoning,
            required_files=required_files or None,
        )
        return cls(goal=task, steps=[step], estimated_complexity=Complexity.MEDIUM)

    def format(self) -> str:
        """Render the plan as plain text for display."""
        lines = [
            f"Goal: {self.goal}",
            f"Estimated Complexity: {self.estimated_complexity.value}",
            "",
            "Execution Steps:",
        ]
        for step in self.steps:
            lines.append("")
            lines.append(f"{step.step}. {step.description}")
            agent = step.agent.value
            if step.model:
                agent += f" ({step.model})"
            lines.append(f"   Agent: {agent}")
            lines.append(f"   Reasoning: {step.reasoning}")
        return "\n".join(lines)


@dataclass
class ToolCallRecord:
    """One dispatched tool call and its result, kept in the step trace."""
    id: str
    name: str
    input: dict[str, Any]
    result: Any = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "input": self.input,
            "result": self.result,
            "isError": self.is_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRecord":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            input=data.get("input", {}),
            result=data.get("result"),
            is_error=data.get("isError", False),
        )


@dataclass
class StepExecution:
    """Execution record of one plan step."""
    step_number: int
    agent: AgentKind
    description: str
    query: str
    model: str | None = None
    response: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    status: StepStatus = StepStatus.EXECUTING
    error: str | None = None
    started_at: str = field(default_factory=utc_now)
    completed_at: str | None = None

    def finish(self, status: StepStatus, response: str = "", error: str | None = None) -> None:
        """
        Move the step to a terminal status.

        Raises:
            RuntimeError: If the step already reached a terminal status
        """
        if self.status.is_terminal:
            raise RuntimeError(
                f"Step {self.step_number} already finished with status {self.status.value}"
            )
        if not status.is_terminal:
            raise ValueError("finish() requires a terminal status")
        self.status = status
        self.response = response
        self.error = error
        self.completed_at = utc_now()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stepNumber": self.step_number,
            "agent": self.agent.value,
            "description": self.description,
            "query": self.query,
            "response": self.response,
            "status": self.status.value,
            "startedAt": self.started_at,
        }
        if self.model:
            data["model"] = self.model
        if self.tool_calls:
            data["toolCalls"] = [record.to_dict() for record in self.tool_calls]
        if self.error is not None:
            data["error"] = self.error
        if self.completed_at:
            data["completedAt"] = self.completed_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepExecution":
        return cls(
            step_number=data["stepNumber"],
            agent=AgentKind(data["agent"]),
            description=data.get("description", ""),
            query=data.get("query", ""),
            model=data.get("model"),
            response=data.get("response", ""),
            tool_calls=[ToolCallRecord.from_dict(tc) for tc in data.get("toolCalls", [])],
            status=StepStatus(data.get("status", "executing")),
            error=data.get("error"),
            started_at=data.get("startedAt", ""),
            completed_at=data.get("completedAt"),
        )


@dataclass
class SessionMessage:
    """One entry of the human-readable run transcript."""
    role: str
    content: str
    timestamp: str = field(default_factory=utc_now)
    files: list[FileAttachment] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.files:
            data["files"] = [f.to_dict() for f in self.files]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionMessage":
        files = data.get("files")
        return cls(
            role=data.get("role", "assistant"),
            content=data.get("content", ""),
            timestamp=data.get("timestamp", ""),
            files=[FileAttachment.from_dict(f) for f in files] if files else None,
        )


@dataclass
class ExecutionSession:
    """Full, replayable record of one run."""
    id: str = field(default_factory=generate_execution_id)
    messages: list[SessionMessage] = field(default_factory=list)
    plan: Plan | None = None
    step_executions: list[StepExecution] = field(default_factory=list)
    outcome: RunOutcome | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def add_message(
        self,
        role: str,
        content: str,
        files: list[FileAttachment] | None = None,
    ) -> SessionMessage:
        message = SessionMessage(role=role, content=content, files=files or None)
        self.messages.append(message)
        return message

    @property
    def task(self) -> str:
        """The submitted task (first user message)."""
        for message in self.messages:
            if message.role == "user":
                return message.content
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "messages": [m.to_dict() for m in self.messages],
            "plan": self.plan.to_dict() if self.plan else None,
            "stepExecutions": [s.to_dict() for s in self.step_executions],
            "outcome": self.outcome.value if self.outcome else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionSession":
        plan_data = data.get("plan")
        outcome = data.get("outcome")
        return cls(
            id=data["id"],
            messages=[SessionMessage.from_dict(m) for m in data.get("messages", [])],
            plan=Plan.from_dict(plan_data) if plan_data else None,
            step_executions=[StepExecution.from_dict(s) for s in data.get("stepExecutions", [])],
            outcome=RunOutcome(outcome) if outcome else None,
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class RunResult:
    """Value returned to the caller when a run ends."""
    outcome: RunOutcome
    result: str
    session_id: str
    plan: Plan | None = None

    @property
    def aborted(self) -> bool:
        return self.outcome is RunOutcome.ABORTED

    @property
    def failed(self) -> bool:
        return self.outcome is RunOutcome.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "result": self.result,
            "sessionId": self.session_id,
            "plan": self.plan.to_dict() if self.plan else None,
        }
