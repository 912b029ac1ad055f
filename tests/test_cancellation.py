"""Tests for CancellationToken."""

import asyncio

import pytest

from magentic_orchestrator.core.cancellation import CancellationToken
from magentic_orchestrator.core.errors import ExecutionAborted


class TestCancellationToken:

    def test_initial_state(self):
        token = CancellationToken()
        assert token.is_cancelled is False
        token.raise_if_cancelled()

    def test_cancel_and_reset(self):
        token = CancellationToken()
        token.cancel("stop please")
        assert token.is_cancelled is True
        with pytest.raises(ExecutionAborted, match="stop please"):
            token.raise_if_cancelled()

        token.reset()
        assert token.is_cancelled is False
        assert token.reason is None

    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_default_message(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ExecutionAborted, match="Execution aborted by user"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        token = CancellationToken()
        await token.sleep(0.01)

    @pytest.mark.asyncio
    async def test_sleep_interrupted_by_cancel(self):
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        canceller = asyncio.ensure_future(cancel_soon())
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(ExecutionAborted):
            await token.sleep(30)
        await canceller
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_when_already_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ExecutionAborted):
            await token.sleep(30)
