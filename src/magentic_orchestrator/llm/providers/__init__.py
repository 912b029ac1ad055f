"""
LLM Provider Implementations

Concrete implementations of LLMProvider:
- ClaudeProvider: Anthropic's Claude models (tools, MCP, file attachments)
- GeminiProvider: Google Gemini via its OpenAI-compatible endpoint
- OllamaProvider: Local models via Ollama
- OpenAIProvider: OpenAI and OpenAI-compatible endpoints
"""

from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

__all__ = [
    "ClaudeProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
