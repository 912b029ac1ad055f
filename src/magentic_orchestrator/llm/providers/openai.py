"""
OpenAI LLM Provider

Implementation of LLMProvider for OpenAI chat models and any endpoint that
speaks the OpenAI chat-completions protocol.
"""

import json
import os
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


class OpenAIProvider(LLMProvider):
    """
    LLM provider for OpenAI-compatible chat-completions APIs.

    Example:
        provider = OpenAIProvider(api_key="sk-...")
        response = await provider.complete([
            {"role": "user", "content": "Hello!"}
        ])
    """

    MODELS = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4.1",
        "o3-mini",
    ]

    DEFAULT_MODEL = "gpt-4o"
    API_KEY_ENV = "OPENAI_API_KEY"
    BASE_URL: str | None = None

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        **kwargs: Any
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key (falls back to the API_KEY_ENV environment variable)
            model: Model identifier (uses DEFAULT_MODEL if not provided)
            base_url: Custom API base URL (uses BASE_URL if not provided)
            timeout: Request timeout in seconds
            **kwargs: Additional configuration
        """
        api_key = api_key or os.environ.get(self.API_KEY_ENV)
        base_url = base_url or self.BASE_URL
        super().__init__(api_key=api_key, model=model, base_url=base_url, **kwargs)

        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise LLMError(
                    "openai package not installed. Install with: pip install openai",
                    provider=self.get_name()
                )

            client_kwargs: dict[str, Any] = {"timeout": self.timeout, "max_retries": 0}
            if self.api_key:
                client_kwargs["api_key"] = self.api_key
            if self.base_url:
                client_kwargs["base_url"] = self.base_url

            self._client = AsyncOpenAI(**client_kwargs)

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
        Send a chat-completions request.

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
        if tools:
            params["tools"] = self._format_tools(tools)

        try:
            response = await client.chat.completions.create(**params)
        except Exception as e:
            raise self._translate_error(e)

        return self._parse_response(response)

    def _translate_error(self, error: Exception) -> LLMError:
        """Map an SDK exception onto the LLMError hierarchy."""
        name = self.get_name()
        status = getattr(error, "status_code", None)
        message = str(error)

        if status == 429 or "rate limit" in message.lower():
            retry_after = None
            response = getattr(error, "response", None)
            headers = getattr(response, "headers", None)
            if headers is not None and headers.get("retry-after"):
                try:
                    retry_after = float(headers["retry-after"])
                except ValueError:
                    retry_after = None
            if retry_after is None:
                retry_after = parse_retry_after(message)
            return RateLimitError(
                f"{name} rate limit exceeded: {message}",
                provider=name,
                retry_after=retry_after,
            )
        if status in (401, 403):
            return AuthenticationError(
                f"{name} authentication failed: {message}",
                provider=name,
                status_code=status,
            )
        if status == 404:
            return ModelNotFoundError(
                f"Model not found: {self.model}",
                provider=name,
                status_code=404,
            )
        return LLMError(f"{name} API error: {message}", provider=name, status_code=status)

    def _format_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Translate the internal history into chat-completions messages."""
        formatted: list[dict[str, Any]] = []
        if self.system_prompt:
            formatted.append({"role": "system", "content": self.system_prompt})

        for msg in messages:
            role = msg.get("role", "user")

            if role == "tool_results":
                for result in msg.get("results", []):
                    formatted.append({
                        "role": "tool",
                        "tool_call_id": result["tool_call_id"],
                        "content": result["content"],
                    })
            elif role == "assistant" and msg.get("tool_calls"):
                formatted.append({
                    "role": "assistant",
                    "content": msg.get("content") or None,
                    "tool_calls": [
                        {
                            "id": tc["id"],
                            "type": "function",
                            "function": {
                                "name": tc["name"],
                                "arguments": json.dumps(tc.get("arguments", {})),
                            },
                        }
                        for tc in msg["tool_calls"]
                    ],
                })
            elif role == "assistant":
                formatted.append({"role": "assistant", "content": msg.get("content", "")})
            else:
                formatted.append({"role": "user", "content": msg.get("content", "")})

        return formatted

    def _format_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Format tool definitions for the chat-completions API."""
        formatted = []
        for tool in tools:
            formatted.append({
                "type": "function",
                "function": {
                    "name": tool.get("name", ""),
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
                }
            })
        return formatted

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse the chat-completions response."""
        choice = response.choices[0]
        message = choice.message

        content = message.content or ""
        tool_calls = []

        if message.tool_calls:
            for tc in message.tool_calls:
                try:
                    args = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    args = {"raw": tc.function.arguments}

                tool_calls.append(ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=args,
                ))

        stop_reason_map = {
            "stop": "end_turn",
            "tool_calls": "tool_use",
            "length": "max_tokens",
            "content_filter": "end_turn",
        }
        stop_reason = stop_reason_map.get(choice.finish_reason, "end_turn")

        usage = None
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
            model=response.model,
        )

    def get_name(self) -> str:
        """Get the provider name."""
        return "openai"

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
                f"{self.get_name()} API key is required. "
                f"Set {self.API_KEY_ENV} environment variable or pass api_key parameter."
            )
        return True

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
