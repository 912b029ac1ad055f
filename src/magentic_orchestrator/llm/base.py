"""
LLM Provider Base Classes

Defines the abstract interface for backend adapters and the standardized
response types the execution engine consumes. Every adapter translates the
engine's internal message history into its provider's wire format and
normalizes the reply into an LLMResponse.

Internal history format (one dict per turn):
    {"role": "user", "content": str, "files": [FileAttachment, ...]}
    {"role": "assistant", "content": str, "tool_calls": [...], "raw_content": Any}
    {"role": "tool_results", "results": [{"tool_call_id", "name", "content", "is_error"}]}
"""

import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

_RETRY_AFTER_PATTERN = re.compile(
    r"(?:try again|retry after|retry in)\s*(?:in\s*)?(\d+(?:\.\d+)?)\s*s(?:ec(?:ond)?s?)?\b",
    re.IGNORECASE,
)


def new_tool_call_id() -> str:
    """Synthesize an id for a tool call the backend did not label."""
    return f"call_{uuid.uuid4().hex[:12]}"


def parse_retry_after(text: str | None) -> float | None:
    """
    Extract a provider-suggested wait from an error message.

    Recognizes phrasings such as "try again in 30 seconds" and
    "retry after 12s".

    Args:
        text: Error message text

    Returns:
        Wait in seconds, or None when the message names none
    """
    if not text:
        return None
    match = _RETRY_AFTER_PATTERN.search(text)
    if match:
        return float(match.group(1))
    return None


@dataclass
class ToolCall:
    """
    Represents a tool call requested by the LLM.

    Attributes:
        id: Unique identifier for this tool call
        name: Name of the tool to execute
        arguments: Dictionary of arguments to pass to the tool
    """
    id: str
    name: str
    arguments: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        """Create from dictionary."""
        return cls(
            id=data.get("id") or new_tool_call_id(),
            name=data.get("name", ""),
            arguments=data.get("arguments", data.get("input", {})) or {},
        )


@dataclass
class TokenUsage:
    """
    Token usage statistics from an LLM response.

    Attributes:
        input_tokens: Number of tokens in the input/prompt
        output_tokens: Number of tokens in the output/response
        total_tokens: Total tokens used (input + output)
    """
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class LLMResponse:
    """
    Standardized response from an LLM provider.

    Attributes:
        content: Text content of the response
        tool_calls: List of tool calls requested by the LLM
        stop_reason: Reason for stopping generation ("end_turn", "tool_use", "max_tokens")
        usage: Token usage statistics
        model: Model identifier that generated this response
        raw_content: Provider-native assistant content; when set it must be
            re-submitted verbatim as the assistant turn on the next round
        metadata: Additional provider-specific metadata
    """
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = "end_turn"
    usage: TokenUsage | None = None
    model: str = ""
    raw_content: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def has_tool_calls(self) -> bool:
        """Check if the response contains tool calls."""
        return len(self.tool_calls) > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "content": self.content,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "stop_reason": self.stop_reason,
            "usage": self.usage.to_dict() if self.usage else None,
            "model": self.model,
            "metadata": self.metadata,
        }


class LLMProvider(ABC):
    """
    Abstract base class for backend adapters.

    Subclasses must implement:
    - complete(): Send a completion request and return the response
    - get_name(): Return the provider name
    - get_default_model(): Return the default model for this provider

    Adapters do not retry on their own. Rate limits are reported by raising
    RateLimitError so the engine's retry controller can wait and retry while
    staying responsive to cancellation.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        **kwargs: Any
    ):
        """
        Initialize the LLM provider.

        Args:
            api_key: API key for authentication (optional for some providers)
            model: Model identifier to use (uses default if not specified)
            base_url: Base URL for API requests (optional)
            system_prompt: System prompt sent with every request
            temperature: Default sampling temperature
            max_tokens: Default maximum tokens per response
            **kwargs: Additional provider-specific configuration
        """
        self.api_key = api_key
        self._model = model
        self.base_url = base_url
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.config = kwargs

    @property
    def model(self) -> str:
        """Get the model identifier to use."""
        return self._model or self.get_default_model()

    @property
    def model_override(self) -> str | None:
        """Explicitly configured model, or None when the default applies."""
        return self._model

    def set_model(self, model: str | None) -> None:
        """Reconfigure the adapter to use another model for later requests."""
        self._model = model

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """
        Send a completion request to the LLM.

        Args:
            messages: Message history in the internal format
            tools: Optional list of tool definitions
                ({"name", "description", "parameters"})
            temperature: Sampling temperature (adapter default if None)
            max_tokens: Maximum tokens to generate (adapter default if None)
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse containing the model's response

        Raises:
            RateLimitError: If the provider throttled the request
            LLMError: If the request fails for any other reason
        """

    @abstractmethod
    def get_name(self) -> str:
        """Get the name of this provider (e.g. "claude", "ollama")."""

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""

    def get_supported_models(self) -> list[str]:
        """Get list of known models for this provider."""
        return [self.get_default_model()]

    def validate_config(self) -> bool:
        """
        Validate the provider configuration.

        Raises:
            ValueError: If configuration is invalid
        """
        return True

    async def close(self) -> None:
        """Release network resources held by the adapter."""


class LLMError(Exception):
    """Base exception for LLM-related errors."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        response: dict[str, Any] | None = None
    ):
        """
        Initialize LLM error.

        Args:
            message: Error message
            provider: Name of the provider that raised the error
            status_code: HTTP status code (if applicable)
            response: Raw response data (if available)
        """
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response = response


class RateLimitError(LLMError):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = 429,
        response: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, provider=provider, status_code=status_code, response=response)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """Raised when authentication fails."""
    pass


class ModelNotFoundError(LLMError):
    """Raised when the specified model is not available."""
    pass
