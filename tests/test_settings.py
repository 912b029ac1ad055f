"""Tests for YAML settings persistence and API key resolution."""

import keyring.errors
import pytest
from unittest.mock import patch

from magentic_orchestrator.settings.models import AgentSettings, MCPServerSettings, Settings
from magentic_orchestrator.settings.storage import SettingsStorage


@pytest.fixture
def storage(tmp_path):
    return SettingsStorage(config_dir=tmp_path / "config")


class TestSettingsModels:

    def test_defaults(self):
        settings = Settings()

        assert [a.name for a in settings.agents] == ["manager", "claude", "gemini", "ollama"]
        assert settings.max_tool_iterations == 20
        assert settings.max_tool_output_chars == 10000
        assert settings.rate_limit_retries == 3
        assert settings.get_agent("ollama").enabled is False
        assert "ollama" not in [a.name for a in settings.get_enabled_agents()]

    def test_provider_falls_back_to_agent_kind(self):
        assert AgentSettings(name="manager").get_provider() == "claude"
        assert AgentSettings(name="gemini").get_provider() == "gemini"
        assert AgentSettings(name="claude", provider="openai").get_provider() == "openai"


class TestSettingsStorage:

    def test_load_without_file_gives_defaults(self, storage):
        assert storage.load() == Settings()

    def test_round_trip(self, storage):
        settings = Settings(
            agents=[AgentSettings(name="claude", preamble="Schema: orders(id, total)")],
            mcp_servers=[MCPServerSettings(name="db", command="uvx", args=["mcp-sqlite"])],
            max_tool_iterations=8,
        )
        storage.save(settings)

        assert storage.config_file.exists()
        assert storage.load() == settings

    def test_tolerant_load(self, storage):
        storage.config_dir.mkdir(parents=True)
        storage.config_file.write_text(
            "agents:\n"
            "  - name: claude\n"
            "    model: claude-haiku\n"
            "    unknown_key: 1\n"
            "  - model: nameless\n"
            "mcp_servers:\n"
            "  - name: broken\n"
            "rate_limit_retries: 5\n"
            "something_else: true\n",
            encoding="utf-8",
        )

        settings = storage.load()
        assert [a.name for a in settings.agents] == ["claude"]
        assert settings.agents[0].model == "claude-haiku"
        assert settings.mcp_servers == []
        assert settings.rate_limit_retries == 5
        assert settings.max_tool_iterations == 20

    def test_empty_file(self, storage):
        storage.config_dir.mkdir(parents=True)
        storage.config_file.write_text("", encoding="utf-8")
        assert storage.load() == Settings()

    def test_executions_dir(self, storage, tmp_path):
        assert storage.executions_dir(Settings()) == storage.config_dir / "executions"
        custom = Settings(executions_dir=str(tmp_path / "runs"))
        assert storage.executions_dir(custom) == tmp_path / "runs"


class TestApiKeys:

    def test_environment_wins_over_keyring(self, storage, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
        with patch("keyring.get_password", return_value="from-keyring") as get_password:
            assert storage.resolve_api_key("claude") == "from-env"
        get_password.assert_not_called()

    def test_keyring_fallback(self, storage, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with patch("keyring.get_password", return_value="from-keyring") as get_password:
            assert storage.resolve_api_key("gemini") == "from-keyring"
        get_password.assert_called_once_with("magentic-orchestrator", "gemini")

    def test_keyring_unavailable(self, storage, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with patch("keyring.get_password", side_effect=keyring.errors.KeyringError("no backend")):
            assert storage.get_api_key("openai") is None
            assert storage.has_api_key("openai") is False

    def test_set_and_delete(self, storage):
        with patch("keyring.set_password") as set_password:
            storage.set_api_key("claude", "sk-ant")
        set_password.assert_called_once_with("magentic-orchestrator", "claude", "sk-ant")

        with patch(
            "keyring.delete_password",
            side_effect=keyring.errors.PasswordDeleteError("missing"),
        ):
            storage.delete_api_key("claude")

    def test_set_failure_propagates(self, storage):
        with patch("keyring.set_password", side_effect=keyring.errors.KeyringError("locked")):
            with pytest.raises(keyring.errors.KeyringError):
                storage.set_api_key("claude", "sk-ant")
