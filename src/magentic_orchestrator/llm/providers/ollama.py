"""
Ollama LLM Provider

Implementation of LLMProvider for local Ollama models.
Uses HTTP requests to communicate with the Ollama API.
"""

import asyncio
import json
import logging
from typing import Any

from ..base import (
    LLMError,
    LLMProvider,
    LLMResponse,
    ModelNotFoundError,
    RateLimitError,
    TokenUsage,
    ToolCall,
    new_tool_call_id,
    parse_retry_after,
)
from ..tool_parsing import describe_tools_for_prompt, extract_tool_calls

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """
    LLM provider for local Ollama models.

    Tools are offered natively and also described in the system prompt.
    Models that answer with tool calls written into their text (``<tool_call>``
    tags or JSON blocks) are handled by falling back to text extraction when
    the reply carries no native calls.

    Requires Ollama to be running locally (default: http://localhost:11434)

    Example:
        provider = OllamaProvider(model="llama3.2")
        response = await provider.complete([
            {"role": "user", "content": "Hello!"}
        ])
    """

    MODELS = [
        "llama3.2",
        "llama3.1",
        "qwen2.5",
        "mistral",
        "SpeakLeash/bielik-11b-v2.3-instruct:Q4_K_M",
    ]

    DEFAULT_MODEL = "llama3.2"
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 300.0,
        **kwargs: Any
    ):
        """
        Initialize the Ollama provider.

        Args:
            model: Model identifier (uses DEFAULT_MODEL if not provided)
            base_url: Ollama API URL (uses DEFAULT_BASE_URL if not provided)
            timeout: Request timeout in seconds (longer for local models)
            **kwargs: Additional configuration
        """
        kwargs.pop("api_key", None)
        base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        super().__init__(api_key=None, model=model, base_url=base_url, **kwargs)

        self.timeout = timeout
        self._session = None

    async def _get_session(self):
        """Get or create an aiohttp session."""
        if self._session is None:
            try:
                import aiohttp
            except ImportError:
                raise LLMError(
                    "aiohttp package not installed. Install with: pip install aiohttp",
                    provider="ollama"
                )
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """
        Send a completion request to Ollama.

        Args:
            messages: Message history in the internal format
            tools: Optional list of tool definitions
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional parameters

        Returns:
            LLMResponse with the model's response
        """
        import aiohttp

        session = await self._get_session()

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(messages, tools),
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.max_tokens,
            }
        }
        if tools:
            payload["tools"] = self._format_tools(tools)

        url = f"{self.base_url}/api/chat"

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status == 404:
                    raise ModelNotFoundError(
                        f"Model '{self.model}' not found. "
                        f"Run: ollama pull {self.model}",
                        provider="ollama",
                        status_code=404,
                    )

                if response.status == 429:
                    error_text = await response.text()
                    raise RateLimitError(
                        f"Ollama is busy: {error_text}",
                        provider="ollama",
                        retry_after=parse_retry_after(error_text),
                    )

                if response.status != 200:
                    error_text = await response.text()
                    raise LLMError(
                        f"Ollama API error ({response.status}): {error_text}",
                        provider="ollama",
                        status_code=response.status
                    )

                data = await response.json()
                return self._parse_response(data)

        except aiohttp.ClientConnectorError:
            raise LLMError(
                f"Cannot connect to Ollama at {self.base_url}. "
                "Make sure Ollama is running: ollama serve",
                provider="ollama"
            )
        except asyncio.TimeoutError:
            raise LLMError(
                f"Request timed out after {self.timeout}s. "
                "Try a simpler query or a smaller max_tokens.",
                provider="ollama"
            )

    def _format_messages(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Translate the internal history into Ollama chat messages."""
        formatted = []

        system_parts = [self.system_prompt] if self.system_prompt else []
        if tools:
            system_parts.append(describe_tools_for_prompt(tools))
        if system_parts:
            formatted.append({"role": "system", "content": "\n\n".join(system_parts)})

        for msg in messages:
            role = msg.get("role", "user")

            if role == "tool_results":
                for result in msg.get("results", []):
                    formatted.append({
                        "role": "tool",
                        "tool_name": result.get("name", ""),
                        "content": result["content"],
                    })
            elif role == "assistant" and msg.get("tool_calls"):
                formatted.append({
                    "role": "assistant",
                    "content": msg.get("content", ""),
                    "tool_calls": [
                        {
                            "function": {
                                "name": tc["name"],
                                "arguments": tc.get("arguments", {}),
                            }
                        }
                        for tc in msg["tool_calls"]
                    ]
                })
            elif role == "assistant":
                formatted.append({"role": "assistant", "content": msg.get("content", "")})
            else:
                content = msg.get("content", "")
                for attachment in msg.get("files") or []:
                    content += f"\n[File: {attachment.original_name} ({attachment.mime_type})]"
                formatted.append({"role": "user", "content": content})

        return formatted

    def _format_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Format tool definitions for the Ollama API."""
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

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        """Parse the Ollama API response."""
        message = data.get("message", {})
        content = message.get("content", "")
        tool_calls = []

        for tc in message.get("tool_calls") or []:
            func = tc.get("function", {})
            arguments = func.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    logger.warning(f"Unparseable arguments for tool {func.get('name')}")
                    arguments = {}
            tool_calls.append(ToolCall(
                id=tc.get("id") or new_tool_call_id(),
                name=func.get("name", ""),
                arguments=arguments or {},
            ))

        if not tool_calls:
            tool_calls = extract_tool_calls(content)
            if tool_calls:
                logger.debug(f"Extracted {len(tool_calls)} tool call(s) from reply text")

        stop_reason = "tool_use" if tool_calls else "end_turn"
        if data.get("done_reason") == "length":
            stop_reason = "max_tokens"

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            input_tokens = data.get("prompt_eval_count", 0)
            output_tokens = data.get("eval_count", 0)
            usage = TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
            model=data.get("model", self.model),
            metadata={
                "total_duration": data.get("total_duration"),
                "eval_duration": data.get("eval_duration"),
            }
        )

    def get_name(self) -> str:
        """Get the provider name."""
        return "ollama"

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.DEFAULT_MODEL

    def get_supported_models(self) -> list[str]:
        """Get commonly used models."""
        return self.MODELS.copy()

    async def list_local_models(self) -> list[str]:
        """
        List models available locally in Ollama.

        Returns:
            List of model names (empty if Ollama is unreachable)
        """
        import aiohttp

        session = await self._get_session()
        url = f"{self.base_url}/api/tags"

        try:
            async with session.get(url) as response:
                if response.status == 200:
                    data = await response.json()
                    return [m["name"] for m in data.get("models", [])]
                return []
        except aiohttp.ClientError as e:
            logger.warning(f"Cannot list Ollama models: {e}")
            return []

    def validate_config(self) -> bool:
        """Validate the provider configuration."""
        # Ollama doesn't require API key
        return True
