"""
Claude LLM Provider

Implementation of LLMProvider for Anthropic's Claude models.
Uses the anthropic SDK for API communication.
"""

import base64
import logging
import os
from pathlib import Path
from typing import Any

from ..base import (
    AuthenticationError,
    LLMError,
    LLMProvider,
    LLMResponse,
    ModelNotFoundError,
    RateLimitError,
    TokenUsage,
    ToolCall,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_WAIT = 60.0


class ClaudeProvider(LLMProvider):
    """
    LLM provider for Anthropic's Claude models.

    Supports:
    - Native tool calling, with the assistant's raw content blocks kept so
      tool_use ids match on the next round
    - File attachments: PDFs as document blocks, other files inlined as text

    Rate limits surface as RateLimitError carrying the provider's suggested
    wait; the engine decides whether to retry.

    Example:
        provider = ClaudeProvider(api_key="sk-ant-...")
        response = await provider.complete([
            {"role": "user", "content": "Hello!"}
        ])
    """

    MODELS = [
        "claude-opus-4-5-20251101",
        "claude-sonnet-4-5-20250929",
        "claude-sonnet-4-20250514",
        "claude-3-5-haiku-20241022",
    ]

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 300.0,
        **kwargs: Any
    ):
        """
        Initialize the Claude provider.

        Args:
            api_key: Anthropic API key (uses ANTHROPIC_API_KEY env var if not provided)
            model: Model identifier (uses DEFAULT_MODEL if not provided)
            base_url: Custom API base URL (optional)
            timeout: Request timeout in seconds
            **kwargs: Additional configuration
        """
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        super().__init__(api_key=api_key, model=model, base_url=base_url, **kwargs)

        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Get or create the Anthropic client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise LLMError(
                    "anthropic package not installed. Install with: pip install anthropic",
                    provider="claude"
                )

            client_kwargs: dict[str, Any] = {
                "timeout": self.timeout,
                # Retry policy belongs to the engine
                "max_retries": 0,
            }
            if self.api_key:
                client_kwargs["api_key"] = self.api_key
            if self.base_url:
                client_kwargs["base_url"] = self.base_url

            self._client = anthropic.AsyncAnthropic(**client_kwargs)

        return self._client

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """
        Send a completion request to Claude.

        Args:
            messages: Message history in the internal format
            tools: Optional list of tool definitions
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional parameters

        Returns:
            LLMResponse with the model's response
        """
        client = self._get_client()

        params: dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(messages),
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if self.system_prompt:
            params["system"] = self.system_prompt
        if tools:
            params["tools"] = self._format_tools(tools)

        try:
            response = await client.messages.create(**params)
        except Exception as e:
            raise self._translate_error(e)

        return self._parse_response(response)

    def _translate_error(self, error: Exception) -> LLMError:
        """Map an SDK exception onto the LLMError hierarchy."""
        status = getattr(error, "status_code", None)
        message = str(error)
        body = getattr(error, "body", None)
        error_type = ""
        if isinstance(body, dict):
            error_type = (body.get("error") or {}).get("type", "")

        if status == 429 or error_type == "rate_limit_error":
            retry_after = None
            response = getattr(error, "response", None)
            headers = getattr(response, "headers", None)
            if headers is not None:
                header = headers.get("retry-after")
                if header:
                    try:
                        retry_after = float(header)
                    except ValueError:
                        retry_after = None
            if retry_after is None:
                retry_after = parse_retry_after(message)
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_WAIT
            logger.info(f"Claude rate limit hit, provider suggests {retry_after:.0f}s wait")
            return RateLimitError(
                f"Claude rate limit exceeded: {message}",
                provider="claude",
                retry_after=retry_after,
            )

        if status == 401 or error_type == "authentication_error":
            return AuthenticationError(
                f"Claude authentication failed: {message}",
                provider="claude",
                status_code=401,
            )

        if status == 404 or error_type == "not_found_error":
            return ModelNotFoundError(
                f"Model not found: {self.model}",
                provider="claude",
                status_code=404,
            )

        return LLMError(f"Claude API error: {message}", provider="claude", status_code=status)

    def _format_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Translate the internal history into Anthropic messages."""
        formatted = []
        for msg in messages:
            role = msg.get("role", "user")

            if role == "tool_results":
                formatted.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result["tool_call_id"],
                            "content": result["content"],
                            "is_error": bool(result.get("is_error")),
                        }
                        for result in msg.get("results", [])
                    ],
                })
            elif role == "assistant":
                if msg.get("raw_content") is not None:
                    formatted.append({"role": "assistant", "content": msg["raw_content"]})
                    continue
                blocks: list[dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for tc in msg.get("tool_calls", []):
                    blocks.append({
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": tc.get("arguments", {}),
                    })
                formatted.append({"role": "assistant", "content": blocks or msg.get("content", "")})
            else:
                files = msg.get("files") or []
                if not files:
                    formatted.append({"role": "user", "content": msg.get("content", "")})
                    continue
                blocks = []
                if msg.get("content", "").strip():
                    blocks.append({"type": "text", "text": msg["content"]})
                for attachment in files:
                    blocks.append(self._file_block(attachment))
                formatted.append({"role": "user", "content": blocks})

        return formatted

    def _file_block(self, attachment: Any) -> dict[str, Any]:
        """Build a content block for an attached file."""
        logger.info(f"Attaching file {attachment.original_name} ({attachment.mime_type})")
        path = Path(attachment.path)
        try:
            if attachment.mime_type == "application/pdf":
                data = base64.standard_b64encode(path.read_bytes()).decode("ascii")
                return {
                    "type": "document",
                    "source": {
                        "type": "base64",
                        "media_type": "application/pdf",
                        "data": data,
                    },
                }
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise LLMError(
                f"Cannot read attached file {attachment.original_name}: {e}",
                provider="claude",
            )
        return {
            "type": "text",
            "text": f"--- File: {attachment.original_name} ---\n{text}\n--- End of file ---",
        }

    def _format_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Format tool definitions for the Claude API."""
        formatted = []
        for tool in tools:
            formatted.append({
                "name": tool.get("name", ""),
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
            })
        return formatted

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse the Claude API response."""
        texts = []
        tool_calls = []
        raw_content = []

        for block in response.content:
            if hasattr(block, "model_dump"):
                raw_content.append(block.model_dump(exclude_none=True))
            else:
                raw_content.append(block)
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input or {}),
                ))

        stop_reason_map = {
            "end_turn": "end_turn",
            "tool_use": "tool_use",
            "max_tokens": "max_tokens",
            "stop_sequence": "end_turn",
        }
        stop_reason = stop_reason_map.get(response.stop_reason, "end_turn")

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        return LLMResponse(
            content="\n".join(texts),
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
            model=response.model,
            raw_content=raw_content,
        )

    def get_name(self) -> str:
        """Get the provider name."""
        return "claude"

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.DEFAULT_MODEL

    def get_supported_models(self) -> list[str]:
        """Get supported models."""
        return self.MODELS.copy()

    def validate_config(self) -> bool:
        """Validate the provider configuration."""
        if not self.api_key:
            raise ValueError(
                "Claude API key is required. "
                "Set ANTHROPIC_API_KEY environment variable or pass api_key parameter."
            )
        return True

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
