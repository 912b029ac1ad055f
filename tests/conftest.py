"""Pytest configuration and fixtures for Magentic Orchestrator tests."""

import copy
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from magentic_orchestrator.core.agents import AgentProfile
from magentic_orchestrator.core.models import AgentKind, FileAttachment
from magentic_orchestrator.llm.base import LLMProvider, LLMResponse, ToolCall
from magentic_orchestrator.state.session_store import ExecutionSessionStore


class FakeProvider(LLMProvider):
    """
    Scripted backend.

    Each call to complete() pops the next scripted item: an LLMResponse is
    returned, an exception is raised. Every call records a deep copy of the
    history it received and the model configured at that moment.
    """

    def __init__(self, script: list[Any] | None = None, name: str = "fake", **kwargs: Any):
        super().__init__(**kwargs)
        self.script = list(script or [])
        self.name = name
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def complete(self, messages, tools=None, temperature=None, max_tokens=None, **kwargs):
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "tools": tools,
            "model": self.model,
        })
        if not self.script:
            raise AssertionError(f"{self.name}: no scripted response left")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get_name(self) -> str:
        return self.name

    def get_default_model(self) -> str:
        return "fake-default"

    async def close(self) -> None:
        self.closed = True


def text(content: str) -> LLMResponse:
    """Final answer without tool calls."""
    return LLMResponse(content=content)


def tool(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call_1",
         content: str = "") -> LLMResponse:
    """Response requesting a single tool call."""
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments or {})],
        stop_reason="tool_use",
    )


def make_agents(**providers: FakeProvider) -> dict[AgentKind, AgentProfile]:
    """Profiles with default capabilities, e.g. make_agents(claude=p1, gemini=p2)."""
    return {
        AgentKind(kind): AgentProfile.create(AgentKind(kind), provider)
        for kind, provider in providers.items()
    }


@pytest.fixture
def store(tmp_path: Path) -> ExecutionSessionStore:
    return ExecutionSessionStore(tmp_path / "executions")


@pytest.fixture
def pdf_file(tmp_path: Path) -> FileAttachment:
    path = tmp_path / "a.pdf"
    path.write_bytes(b"%PDF-1.4 fake")
    return FileAttachment(
        filename="a.pdf",
        original_name="a.pdf",
        path=str(path),
        mime_type="application/pdf",
        size=path.stat().st_size,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace cancellable sleeps with an AsyncMock recording the waits."""
    from magentic_orchestrator.core.cancellation import CancellationToken

    sleeper = AsyncMock()

    async def fake_sleep(self, seconds):
        self.raise_if_cancelled()
        await sleeper(seconds)
        self.raise_if_cancelled()

    monkeypatch.setattr(CancellationToken, "sleep", fake_sleep)
    return sleeper
