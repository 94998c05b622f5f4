"""Tests for the asyncio-backed scheduler."""
import asyncio

import pytest

from chatsync.scheduling import AsyncioScheduler


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_callback_fires_after_delay(self):
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()

        scheduler.call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancelled_callback_never_fires(self):
        scheduler = AsyncioScheduler()
        calls = []

        handle = scheduler.call_later(0.01, lambda: calls.append("fired"))
        handle.cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_now_follows_loop_clock(self):
        scheduler = AsyncioScheduler()
        assert scheduler.now() == pytest.approx(asyncio.get_running_loop().time(), abs=0.1)
