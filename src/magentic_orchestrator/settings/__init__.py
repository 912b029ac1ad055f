"""
Magentic Orchestrator Settings Module

YAML configuration plus keyring-backed API keys.
"""

from .models import AgentSettings, MCPServerSettings, Settings
from .storage import SettingsStorage

__all__ = [
    "AgentSettings",
    "MCPServerSettings",
    "Settings",
    "SettingsStorage",
]
