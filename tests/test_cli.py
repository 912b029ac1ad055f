"""Tests for the magentic command-line interface."""

import importlib
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

import keyring.errors
from rich.console import Console

from magentic_orchestrator.core.models import ExecutionSession
from magentic_orchestrator.core.orchestrator import Orchestrator
from magentic_orchestrator.settings.storage import SettingsStorage
from magentic_orchestrator.state.session_store import ExecutionSessionStore

from conftest import FakeProvider, make_agents, text, tool

# The cli package re-exports the main() entry point under the module's name
cli_main = importlib.import_module("magentic_orchestrator.cli.main")
app = cli_main.app


runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    monkeypatch.setattr(cli_main.output, "console", Console(width=200))


@pytest.fixture
def storage(tmp_path):
    storage = SettingsStorage(config_dir=tmp_path / "config")
    with patch.object(cli_main, "SettingsStorage", return_value=storage):
        yield storage


@pytest.fixture
def sessions(storage):
    return ExecutionSessionStore(storage.executions_dir(storage.load()))


def use_orchestrator(orchestrator):
    return patch.object(Orchestrator, "from_settings", return_value=orchestrator)


class TestBasics:

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "plan", "chat", "history", "show", "config", "serve"):
            assert command in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Magentic Orchestrator v" in result.output


class TestRun:

    def test_run_completes(self, storage, sessions):
        orchestrator = Orchestrator(
            make_agents(claude=FakeProvider([text("Paris")], name="claude")),
            store=sessions,
        )
        with use_orchestrator(orchestrator):
            result = runner.invoke(app, ["run", "Capital of France?"])

        assert result.exit_code == 0
        assert "Paris" in result.output
        assert len(sessions.list()) == 1

    def test_run_failure_exits_nonzero(self, storage, sessions):
        orchestrator = Orchestrator(
            make_agents(claude=FakeProvider([RuntimeError("backend down")], name="claude")),
            store=sessions,
        )
        with use_orchestrator(orchestrator):
            result = runner.invoke(app, ["run", "Anything"])

        assert result.exit_code == 1
        assert "backend down" in result.output

    def test_plan_only_does_not_execute(self, storage):
        plan_json = (
            '{"goal": "Compare", "steps": ['
            '{"step": 1, "description": "Search", "agent": "gemini", "reasoning": "web"}]}'
        )
        manager = FakeProvider([text(plan_json)], name="manager")
        gemini = FakeProvider([], name="gemini")
        orchestrator = Orchestrator(make_agents(manager=manager, gemini=gemini))

        with use_orchestrator(orchestrator):
            result = runner.invoke(app, ["run", "Compare Q1 and Q2", "--plan-only"])

        assert result.exit_code == 0
        assert "Search" in result.output
        assert gemini.calls == []

    def test_missing_file(self, storage, tmp_path):
        result = runner.invoke(app, ["run", "Read", "--file", str(tmp_path / "nope.pdf")])
        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_no_agents_configured(self, storage):
        with patch.object(
            Orchestrator, "from_settings", side_effect=ValueError("No agents could be configured"),
        ):
            result = runner.invoke(app, ["run", "Anything"])

        assert result.exit_code == 1
        assert "No agents could be configured" in result.output


class TestChat:

    def test_single_message(self, storage):
        claude = FakeProvider([text("Hi there")], name="claude")
        with use_orchestrator(Orchestrator(make_agents(claude=claude))):
            result = runner.invoke(app, ["chat", "Hello"])

        assert result.exit_code == 0
        assert "Hi there" in result.output

    def test_unknown_agent(self, storage):
        result = runner.invoke(app, ["chat", "Hello", "--agent", "nobody"])
        assert result.exit_code == 1
        assert "Unknown agent" in result.output

    def test_verbose_shows_tool_calls(self, storage):
        gemini = FakeProvider([text("found")], name="gemini")
        claude = FakeProvider(
            [tool("invoke_gemini", {"task": "look it up"}), text("Answer")], name="claude",
        )
        with use_orchestrator(Orchestrator(make_agents(claude=claude, gemini=gemini))):
            result = runner.invoke(app, ["chat", "Question", "--verbose"])

        assert result.exit_code == 0
        assert "invoke_gemini" in result.output


class TestHistory:

    def test_empty(self, storage):
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "No executions recorded yet" in result.output

    def test_lists_and_shows(self, storage, sessions):
        session = ExecutionSession()
        session.add_message("user", "Summarize sales")
        sessions.save(session)

        listed = runner.invoke(app, ["history"])
        assert listed.exit_code == 0
        assert session.id in listed.output

        shown = runner.invoke(app, ["show", session.id])
        assert shown.exit_code == 0
        assert "Summarize sales" in shown.output

    def test_show_missing(self, storage):
        result = runner.invoke(app, ["show", "exec-1-missing"])
        assert result.exit_code == 1
        assert "Execution not found" in result.output


class TestConfig:

    def test_show(self, storage, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with patch("keyring.get_password", return_value=None):
            result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "Max tool iterations" in result.output
        assert "Agent claude" in result.output

    def test_set_key(self, storage):
        with patch("keyring.set_password") as set_password:
            result = runner.invoke(app, ["config", "set-key", "claude", "--key", "sk-ant"])

        assert result.exit_code == 0
        set_password.assert_called_once_with("magentic-orchestrator", "claude", "sk-ant")

    def test_set_key_without_keyring(self, storage):
        with patch("keyring.set_password", side_effect=keyring.errors.KeyringError("no backend")):
            result = runner.invoke(app, ["config", "set-key", "claude", "--key", "sk-ant"])

        assert result.exit_code == 1
        assert "Keyring unavailable" in result.output
