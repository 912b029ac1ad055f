"""
Gemini LLM Provider

Google Gemini through its OpenAI-compatible endpoint, so the openai SDK
handles transport and tool calling.
"""

import os
from typing import Any

from .openai import OpenAIProvider


class GeminiProvider(OpenAIProvider):
    """
    LLM provider for Google's Gemini models.

    Used for search and summarization steps. Gemini steps never receive
    file attachments.

    Example:
        provider = GeminiProvider(api_key="AIza...")
        response = await provider.complete([
            {"role": "user", "content": "Summarize the latest release notes"}
        ])
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

    MODELS = [
        "gemini-2.5-flash",
        "gemini-2.5-pro",
        "gemini-2.0-flash",
    ]

    DEFAULT_MODEL = "gemini-2.5-flash"
    API_KEY_ENV = "GEMINI_API_KEY"

    def __init__(self, api_key: str | None = None, **kwargs: Any):
        api_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        super().__init__(api_key=api_key, **kwargs)

    def get_name(self) -> str:
        """Get the provider name."""
        return "gemini"
