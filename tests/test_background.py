"""Tests for the shared AI event loop."""

import asyncio
import threading

import pytest

from background import BackgroundLoop


@pytest.fixture
def ai_loop():
    loop = BackgroundLoop()
    yield loop
    loop.stop()


class TestBackgroundLoop:
    def test_runs_coroutine_off_the_calling_thread(self, ai_loop):
        async def whoami():
            await asyncio.sleep(0)
            return threading.current_thread().name

        assert ai_loop.run(whoami(), timeout=5) == "ai-loop"

    def test_reuses_one_loop(self, ai_loop):
        async def current_loop():
            return asyncio.get_running_loop()

        first = ai_loop.run(current_loop(), timeout=5)
        assert ai_loop.run(current_loop(), timeout=5) is first

    def test_exceptions_reach_the_caller(self, ai_loop):
        async def boom():
            raise LookupError("missing")

        with pytest.raises(LookupError):
            ai_loop.run(boom(), timeout=5)

    def test_restart_after_stop(self, ai_loop):
        async def answer():
            return 42

        ai_loop.run(answer(), timeout=5)
        ai_loop.stop()
        assert ai_loop.loop is None
        assert ai_loop.run(answer(), timeout=5) == 42
