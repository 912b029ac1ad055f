"""Tests for the execution data model."""

import re

import pytest

from magentic_orchestrator.core.errors import MaxIterationsExceeded, PlanParseError
from magentic_orchestrator.core.models import (
    AgentKind,
    Complexity,
    ExecutionSession,
    FileAttachment,
    Plan,
    PlanStep,
    RunOutcome,
    StepExecution,
    StepStatus,
    ToolCallRecord,
    generate_execution_id,
)


class TestPlan:

    def test_from_dict(self):
        plan = Plan.from_dict({
            "goal": "g",
            "steps": [
                {"step": 1, "description": "one", "agent": "Claude", "requiredFiles": "a.pdf"},
                {"step": 2, "description": "two", "agent": "gemini", "model": "gemini-2.5-pro"},
            ],
            "estimatedComplexity": "HIGH",
        })

        assert plan.steps[0].agent is AgentKind.CLAUDE
        assert plan.steps[0].required_files == ["a.pdf"]
        assert plan.steps[1].model == "gemini-2.5-pro"
        assert plan.estimated_complexity is Complexity.HIGH

    def test_defaults(self):
        plan = Plan.from_dict({"steps": [{"description": "only", "agent": "ollama"}]})

        assert plan.goal == ""
        assert plan.steps[0].step == 1
        assert plan.estimated_complexity is Complexity.MEDIUM

    @pytest.mark.parametrize("payload", [
        [],
        {"goal": "no steps"},
        {"steps": []},
        {"steps": ["not an object"]},
        {"steps": [{"agent": "claude"}]},
        {"steps": [{"description": "x", "agent": "nobody"}]},
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(PlanParseError):
            Plan.from_dict(payload)

    def test_round_trip_keeps_wire_keys(self):
        plan = Plan(goal="g", steps=[
            PlanStep(step=1, description="d", agent=AgentKind.CLAUDE, required_files=["a.pdf"]),
        ])
        data = plan.to_dict()

        assert data["estimatedComplexity"] == "medium"
        assert data["steps"][0]["requiredFiles"] == ["a.pdf"]
        assert Plan.from_dict(data) == plan

    def test_format(self):
        plan = Plan.single_step("Do it", AgentKind.GEMINI, "fallback")
        text = plan.format()

        assert "Goal: Do it" in text
        assert "1. Do it" in text
        assert "Agent: gemini" in text


class TestStepExecution:

    def make(self) -> StepExecution:
        return StepExecution(step_number=1, agent=AgentKind.CLAUDE, description="d", query="q")

    def test_finish_once(self):
        execution = self.make()
        assert execution.status is StepStatus.EXECUTING

        execution.finish(StepStatus.COMPLETED, response="done")
        assert execution.completed_at is not None

        with pytest.raises(RuntimeError):
            execution.finish(StepStatus.ERROR, error="late")

    def test_finish_requires_terminal_status(self):
        with pytest.raises(ValueError):
            self.make().finish(StepStatus.EXECUTING)

    def test_serialization(self):
        execution = self.make()
        execution.tool_calls.append(ToolCallRecord(
            id="c1", name="mcp_db_query", input={"sql": "x"}, result={"error": "bad"}, is_error=True,
        ))
        execution.finish(StepStatus.ERROR, error="boom")

        data = execution.to_dict()
        assert data["stepNumber"] == 1
        assert data["toolCalls"][0]["isError"] is True
        assert data["error"] == "boom"
        assert StepExecution.from_dict(data) == execution


class TestExecutionSession:

    def test_id_format(self):
        assert re.fullmatch(r"exec-\d+-[0-9a-f]{9}", generate_execution_id())

    def test_task_is_first_user_message(self):
        session = ExecutionSession()
        session.add_message("assistant", "hello")
        session.add_message("user", "the task")
        assert session.task == "the task"

    def test_round_trip(self, pdf_file):
        session = ExecutionSession()
        session.add_message("user", "Summarize", files=[pdf_file])
        session.plan = Plan.single_step("Summarize", AgentKind.CLAUDE, "r")
        session.outcome = RunOutcome.COMPLETED

        restored = ExecutionSession.from_dict(session.to_dict())
        assert restored == session


class TestFileAttachment:

    def test_matches_either_name(self):
        f = FileAttachment(filename="1700-a.pdf", original_name="a.pdf", path="/tmp/x")
        assert f.matches("a.pdf")
        assert f.matches("1700-a.pdf")
        assert not f.matches("b.pdf")

    def test_from_path(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")

        f = FileAttachment.from_path(path)
        assert f.filename == "notes.txt"
        assert f.mime_type == "text/plain"
        assert f.size == 5

    def test_from_missing_path(self, tmp_path):
        with pytest.raises(OSError):
            FileAttachment.from_path(tmp_path / "missing.pdf")


def test_max_iterations_message_names_bound():
    error = MaxIterationsExceeded(20, agent="claude")
    assert "Maximum tool iterations (20)" in str(error)
    assert error.limit == 20
