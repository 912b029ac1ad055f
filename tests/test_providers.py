"""Tests for the backend adapters and the provider factory."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from magentic_orchestrator.llm.base import (
    AuthenticationError,
    LLMError,
    ModelNotFoundError,
    RateLimitError,
    parse_retry_after,
)
from magentic_orchestrator.llm.factory import LLMFactory
from magentic_orchestrator.llm.providers.claude import DEFAULT_RATE_LIMIT_WAIT, ClaudeProvider
from magentic_orchestrator.llm.providers.gemini import GeminiProvider
from magentic_orchestrator.llm.providers.ollama import OllamaProvider
from magentic_orchestrator.llm.providers.openai import OpenAIProvider


class APIStatusError(Exception):
    """Stand-in for an SDK error carrying an HTTP status."""

    def __init__(self, message, status_code, body=None, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.response = SimpleNamespace(headers=headers or {})


def claude_reply(*blocks, stop_reason="end_turn"):
    return SimpleNamespace(
        content=list(blocks),
        stop_reason=stop_reason,
        model="claude-sonnet-4-5-20250929",
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def claude_with_client(reply=None, error=None) -> ClaudeProvider:
    provider = ClaudeProvider(api_key="sk-ant-test", system_prompt="Be brief.")
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=reply, side_effect=error)
    provider._client = client
    return provider


def openai_reply(content="", tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        model="gpt-4o",
    )


def test_parse_retry_after():
    assert parse_retry_after("Please try again in 30 seconds") == 30.0
    assert parse_retry_after("retry after 12s") == 12.0
    assert parse_retry_after("Rate limit exceeded") is None
    assert parse_retry_after(None) is None


class TestClaudeProvider:

    @pytest.mark.asyncio
    async def test_text_and_tool_use(self):
        reply = claude_reply(
            SimpleNamespace(type="text", text="Checking."),
            SimpleNamespace(type="tool_use", id="toolu_1", name="mcp_db_query", input={"sql": "x"}),
            stop_reason="tool_use",
        )
        provider = claude_with_client(reply)

        response = await provider.complete([{"role": "user", "content": "hi"}], tools=[
            {"name": "mcp_db_query", "description": "SQL", "parameters": {"type": "object"}},
        ])

        assert response.content == "Checking."
        assert response.stop_reason == "tool_use"
        assert response.tool_calls[0].id == "toolu_1"
        assert response.tool_calls[0].arguments == {"sql": "x"}
        assert response.usage.total_tokens == 15
        assert len(response.raw_content) == 2

        params = provider._client.messages.create.call_args.kwargs
        assert params["system"] == "Be brief."
        assert params["tools"][0]["input_schema"] == {"type": "object"}

    def test_format_messages(self, pdf_file):
        provider = ClaudeProvider(api_key="k")
        formatted = provider._format_messages([
            {"role": "user", "content": "Read this", "files": [pdf_file]},
            {"role": "assistant", "content": "", "raw_content": [{"type": "tool_use", "id": "t1"}]},
            {"role": "tool_results", "results": [
                {"tool_call_id": "t1", "name": "x", "content": "out", "is_error": False},
            ]},
        ])

        assert formatted[0]["content"][0] == {"type": "text", "text": "Read this"}
        assert formatted[0]["content"][1]["type"] == "document"
        assert formatted[0]["content"][1]["source"]["media_type"] == "application/pdf"
        assert formatted[1] == {"role": "assistant", "content": [{"type": "tool_use", "id": "t1"}]}
        assert formatted[2]["role"] == "user"
        assert formatted[2]["content"][0]["tool_use_id"] == "t1"

    def test_text_file_inlined(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        attachment = SimpleNamespace(original_name="notes.txt", mime_type="text/plain", path=str(path))

        block = ClaudeProvider(api_key="k")._file_block(attachment)
        assert block["text"] == "--- File: notes.txt ---\nhello\n--- End of file ---"

    @pytest.mark.asyncio
    async def test_rate_limit_uses_retry_after_header(self):
        provider = claude_with_client(error=APIStatusError("slow down", 429, headers={"retry-after": "7"}))

        with pytest.raises(RateLimitError) as exc_info:
            await provider.complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_rate_limit_default_wait(self):
        error = APIStatusError("overloaded", 400, body={"error": {"type": "rate_limit_error"}})
        provider = claude_with_client(error=error)

        with pytest.raises(RateLimitError) as exc_info:
            await provider.complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.retry_after == DEFAULT_RATE_LIMIT_WAIT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        (401, AuthenticationError),
        (404, ModelNotFoundError),
        (500, LLMError),
    ])
    async def test_other_errors(self, status, expected):
        provider = claude_with_client(error=APIStatusError("nope", status))
        with pytest.raises(expected):
            await provider.complete([{"role": "user", "content": "hi"}])

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError):
            ClaudeProvider().validate_config()


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_tool_calls_parsed(self):
        provider = OpenAIProvider(api_key="sk-test")
        call = SimpleNamespace(
            id="call_1",
            function=SimpleNamespace(name="invoke_claude", arguments='{"task": "review"}'),
        )
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(
            return_value=openai_reply(tool_calls=[call], finish_reason="tool_calls")
        )

        response = await provider.complete([{"role": "user", "content": "hi"}])

        assert response.stop_reason == "tool_use"
        assert response.tool_calls[0].arguments == {"task": "review"}
        assert response.usage.total_tokens == 7

    def test_format_messages(self):
        provider = OpenAIProvider(api_key="k", system_prompt="sys")
        formatted = provider._format_messages([
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "", "tool_calls": [
                {"id": "c1", "name": "lookup", "arguments": {"q": 1}},
            ]},
            {"role": "tool_results", "results": [
                {"tool_call_id": "c1", "name": "lookup", "content": "r", "is_error": False},
            ]},
        ])

        assert formatted[0] == {"role": "system", "content": "sys"}
        assert formatted[2]["content"] is None
        assert formatted[2]["tool_calls"][0]["function"]["arguments"] == '{"q": 1}'
        assert formatted[3] == {"role": "tool", "tool_call_id": "c1", "content": "r"}

    def test_rate_limit_message_parsed(self):
        provider = OpenAIProvider(api_key="k")
        error = provider._translate_error(APIStatusError("Rate limit reached, try again in 20s", 429))

        assert isinstance(error, RateLimitError)
        assert error.retry_after == 20.0

    def test_forbidden_is_authentication(self):
        error = OpenAIProvider(api_key="k")._translate_error(APIStatusError("denied", 403))
        assert isinstance(error, AuthenticationError)


class TestGeminiProvider:

    def test_uses_compatible_endpoint(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "AIza-test")
        provider = GeminiProvider()

        assert provider.api_key == "AIza-test"
        assert provider.base_url == GeminiProvider.BASE_URL
        assert provider.model == "gemini-2.5-flash"
        assert provider.get_name() == "gemini"

    def test_errors_name_gemini(self):
        error = GeminiProvider(api_key="k")._translate_error(APIStatusError("quota", 429))
        assert error.provider == "gemini"


class TestOllamaProvider:

    def test_native_tool_calls(self):
        response = OllamaProvider()._parse_response({
            "model": "llama3.2",
            "message": {
                "content": "",
                "tool_calls": [{"function": {"name": "lookup", "arguments": '{"q": "x"}'}}],
            },
            "prompt_eval_count": 4,
            "eval_count": 2,
        })

        assert response.stop_reason == "tool_use"
        assert response.tool_calls[0].arguments == {"q": "x"}
        assert response.tool_calls[0].id.startswith("call_")
        assert response.usage.total_tokens == 6

    def test_text_tool_calls_fallback(self):
        response = OllamaProvider()._parse_response({
            "message": {"content": '<tool_call>{"name": "lookup", "arguments": {"q": "y"}}</tool_call>'},
        })
        assert [c.name for c in response.tool_calls] == ["lookup"]

    def test_plain_answer(self):
        response = OllamaProvider()._parse_response({
            "message": {"content": "Done."},
            "done_reason": "stop",
        })
        assert response.tool_calls == []
        assert response.stop_reason == "end_turn"

    def test_tools_described_in_system_prompt(self, pdf_file):
        provider = OllamaProvider(system_prompt="Local helper.")
        formatted = provider._format_messages(
            [{"role": "user", "content": "Go", "files": [pdf_file]}],
            tools=[{"name": "lookup", "description": "Find", "parameters": {}}],
        )

        assert formatted[0]["role"] == "system"
        assert formatted[0]["content"].startswith("Local helper.\n\nAVAILABLE TOOLS:")
        assert "[File: a.pdf (application/pdf)]" in formatted[1]["content"]

    def test_base_url_normalized(self):
        provider = OllamaProvider(base_url="http://gpu-box:11434/", api_key="ignored")
        assert provider.base_url == "http://gpu-box:11434"
        assert provider.api_key is None


class TestLLMFactory:

    def test_create_builtin(self):
        provider = LLMFactory.create("ollama", model="qwen2.5")
        assert isinstance(provider, OllamaProvider)
        assert provider.model == "qwen2.5"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            LLMFactory.create("nobody")

    def test_validation_failure_wrapped(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMError, match="Failed to create openai provider"):
            LLMFactory.create("openai")

    def test_none_kwargs_keep_defaults(self):
        provider = LLMFactory.create("claude", api_key="k", system_prompt=None)
        assert provider.max_tokens == 8192
        assert provider.system_prompt is None

    def test_supported_providers(self):
        assert set(LLMFactory.BUILT_IN) <= set(LLMFactory.get_supported_providers())
