"""
Settings storage management for Magentic Orchestrator.

This module provides YAML-based configuration file persistence with:
- Automatic directory creation
- Dataclass to dict conversion for serialization
- Default Settings when no configuration exists
- API key resolution from environment variables, then the system keyring
"""

import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import yaml

from .models import AgentSettings, MCPServerSettings, Settings

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "claude": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}


class SettingsStorage:
    """
    Settings storage manager.

    Handles loading and saving Settings objects to YAML configuration files.
    Configuration is stored at ~/.magentic-orchestrator/config.yaml by default.
    API keys are never written to the YAML file.

    Attributes:
        config_dir: Directory path for configuration files.
        config_file: Path to the main configuration file.
    """

    KEYRING_SERVICE = "magentic-orchestrator"

    def __init__(self, config_dir: Path | None = None) -> None:
        """
        Initialize the settings storage.

        Args:
            config_dir: Optional path to configuration directory.
                       Defaults to ~/.magentic-orchestrator/
        """
        self.config_dir = config_dir or Path.home() / ".magentic-orchestrator"
        self.config_file = self.config_dir / "config.yaml"

    def load(self) -> Settings:
        """
        Load settings from the configuration file.

        Returns:
            Settings object loaded from config file, or default Settings
            if the configuration file does not exist.
        """
        if not self.config_file.exists():
            return Settings()

        with open(self.config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return self._dict_to_settings(data)

    def save(self, settings: Settings) -> None:
        """
        Save settings to the configuration file.

        Creates the configuration directory if it does not exist.
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.dump(
                self._settings_to_dict(settings),
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )

    def executions_dir(self, settings: Settings) -> Path:
        """Directory holding execution sessions."""
        if settings.executions_dir:
            return Path(settings.executions_dir).expanduser()
        return self.config_dir / "executions"

    def _settings_to_dict(self, settings: Settings) -> dict[str, Any]:
        return asdict(settings)

    def _dict_to_settings(self, data: dict[str, Any]) -> Settings:
        """
        Convert a dictionary to a Settings object.

        Unknown keys are ignored; missing keys take their defaults.
        """
        defaults = Settings()

        agents = []
        for agent_dict in data.get("agents") or []:
            if not agent_dict.get("name"):
                logger.warning("Ignoring agent entry without a name")
                continue
            known = {k: v for k, v in agent_dict.items() if k in AgentSettings.__dataclass_fields__}
            agents.append(AgentSettings(**known))
        if not agents:
            agents = defaults.agents

        servers = []
        for server_dict in data.get("mcp_servers") or []:
            if not server_dict.get("name") or not server_dict.get("command"):
                logger.warning("Ignoring MCP server entry without name or command")
                continue
            servers.append(MCPServerSettings(
                name=server_dict["name"],
                command=server_dict["command"],
                args=list(server_dict.get("args") or []),
                env=dict(server_dict.get("env") or {}),
            ))

        return Settings(
            agents=agents,
            default_agent=data.get("default_agent", defaults.default_agent),
            mcp_servers=servers,
            executions_dir=data.get("executions_dir", defaults.executions_dir) or "",
            max_tool_iterations=data.get("max_tool_iterations", defaults.max_tool_iterations),
            max_tool_output_chars=data.get("max_tool_output_chars", defaults.max_tool_output_chars),
            max_delegation_depth=data.get("max_delegation_depth", defaults.max_delegation_depth),
            rate_limit_retries=data.get("rate_limit_retries", defaults.rate_limit_retries),
            default_rate_limit_wait=data.get(
                "default_rate_limit_wait", defaults.default_rate_limit_wait
            ),
            log_level=data.get("log_level", defaults.log_level),
        )

    # ========================================================================
    # API Key Management (environment first, then system keyring)
    # ========================================================================

    def resolve_api_key(self, provider: str) -> str | None:
        """
        Find the API key for a provider.

        Environment variables win over the keyring so CI and containers
        can inject keys without touching the credential store.
        """
        for var in API_KEY_ENV_VARS.get(provider, ()):
            value = os.environ.get(var)
            if value:
                return value
        return self.get_api_key(provider)

    def get_api_key(self, provider: str) -> str | None:
        """
        Get the API key for a provider from the system keyring.

        Returns:
            The API key if found, or None if not stored or keyring unavailable.
        """
        try:
            return keyring.get_password(self.KEYRING_SERVICE, provider)
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring unavailable, cannot retrieve API key: {e}")
            return None

    def set_api_key(self, provider: str, api_key: str) -> None:
        """
        Store an API key for a provider in the system keyring.

        Raises:
            keyring.errors.KeyringError: If keyring is not available.
        """
        try:
            keyring.set_password(self.KEYRING_SERVICE, provider, api_key)
            logger.debug(f"API key for {provider} stored successfully")
        except keyring.errors.KeyringError as e:
            logger.error(f"Failed to store API key in keyring: {e}")
            raise

    def delete_api_key(self, provider: str) -> None:
        """Delete the API key for a provider from the system keyring."""
        try:
            keyring.delete_password(self.KEYRING_SERVICE, provider)
            logger.debug(f"API key for {provider} deleted successfully")
        except keyring.errors.PasswordDeleteError:
            logger.debug(f"No API key found for {provider} to delete")
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring error while deleting API key: {e}")

    def has_api_key(self, provider: str) -> bool:
        """Check if an API key is available for a provider."""
        api_key = self.resolve_api_key(provider)
        return api_key is not None and len(api_key) > 0
