"""
Magentic Orchestrator LLM Module

Backend adapter layer: every agent the orchestrator drives is an
LLMProvider that translates the engine's message history into its
provider's wire format.

Key Components:
- LLMProvider: Abstract base class for backend adapters
- LLMResponse: Standardized response type
- ToolCall: Tool call representation
- LLMFactory: Provider instantiation factory
"""

from .base import (
    AuthenticationError,
    LLMError,
    LLMProvider,
    LLMResponse,
    ModelNotFoundError,
    RateLimitError,
    TokenUsage,
    ToolCall,
)
from .factory import LLMFactory

__all__ = [
    "AuthenticationError",
    "LLMError",
    "LLMFactory",
    "LLMProvider",
    "LLMResponse",
    "ModelNotFoundError",
    "RateLimitError",
    "TokenUsage",
    "ToolCall",
]
