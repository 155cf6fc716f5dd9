import asyncio

import pytest

from voice_dictation.domain.timers import PeriodicTimer


class TestPeriodicTimer:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self):
        calls = []
        timer = PeriodicTimer(0.02, lambda: calls.append(1))
        timer.start()
        await asyncio.sleep(0.09)
        timer.stop()

        count = len(calls)
        assert count >= 2
        assert timer.ticks == count
        await asyncio.sleep(0.06)
        assert len(calls) == count
        assert not timer.running

    @pytest.mark.asyncio
    async def test_awaits_async_callback(self):
        calls = []

        async def tick():
            await asyncio.sleep(0)
            calls.append(1)

        timer = PeriodicTimer(0.02, tick)
        timer.start()
        await asyncio.sleep(0.07)
        timer.stop()
        assert calls

    @pytest.mark.asyncio
    async def test_no_tick_before_first_interval(self):
        calls = []
        timer = PeriodicTimer(0.5, lambda: calls.append(1))
        timer.start()
        await asyncio.sleep(0.05)
        assert timer.running
        timer.stop()
        assert calls == []

    @pytest.mark.asyncio
    async def test_callback_can_stop_its_own_timer(self):
        calls = []
        timer = None

        def tick():
            calls.append(1)
            timer.stop()

        timer = PeriodicTimer(0.02, tick)
        timer.start()
        await asyncio.sleep(0.1)
        assert calls == [1]
        assert not timer.running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        timer = PeriodicTimer(0.02, lambda: None)
        timer.start()
        timer.stop()
        timer.stop()
        assert not timer.running

    def test_not_running_before_start(self):
        timer = PeriodicTimer(1.0, lambda: None)
        assert not timer.running
        assert timer.ticks == 0
