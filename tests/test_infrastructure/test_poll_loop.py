"""Tests for the polling loop."""

import asyncio

import pytest

from warden.infrastructure.poll_loop import start_poll_loop


class TestPollLoop:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self):
        ticks = []

        async def tick():
            ticks.append(1)

        loop = start_poll_loop("Test", 0.01, tick)
        await asyncio.sleep(0.1)
        await loop.stop()
        count = len(ticks)
        await asyncio.sleep(0.05)

        assert count >= 2
        assert len(ticks) == count
        assert not loop.running

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_stop_loop(self):
        calls = []

        async def tick():
            calls.append(1)
            raise RuntimeError("tick failed")

        loop = start_poll_loop("Test", 0.01, tick)
        await asyncio.sleep(0.1)
        await loop.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_poke_skips_sleep(self):
        ticks = []

        async def tick():
            ticks.append(1)

        loop = start_poll_loop("Test", 60, tick)
        await asyncio.sleep(0.02)
        loop.poke()
        await asyncio.sleep(0.02)
        await loop.stop()
        assert len(ticks) == 2
