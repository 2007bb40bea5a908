"""ScheduledTask behavior under a virtual clock."""

import asyncio

import pytest

from pprocheckout.common.scheduler import ScheduledTask


def test_periodic_task_runs_until_stopped(clock):
    async def scenario():
        calls = []

        async def callback():
            calls.append(clock.now)

        task = ScheduledTask(callback, 5, clock=clock)
        task.start()
        await clock.advance(16)
        task.stop()
        await clock.advance(20)
        await task.wait()
        return calls, task

    calls, task = asyncio.run(scenario())
    assert calls == [5, 10, 15]
    assert not task.running


def test_duration_fires_on_expire_and_reports_remaining(clock):
    async def scenario():
        expired = []

        async def tick():
            pass

        async def on_expire():
            expired.append(clock.now)

        task = ScheduledTask(tick, 1, duration=3, on_expire=on_expire, clock=clock)
        assert task.remaining() == 3
        task.start()
        await clock.advance(1)
        remaining_mid = task.remaining()
        await clock.advance(5)
        return expired, remaining_mid, task

    expired, remaining_mid, task = asyncio.run(scenario())
    assert remaining_mid == 2
    assert expired == [3]
    assert task.runs == 3
    assert task.remaining() == 0


def test_once_runs_single_time(clock):
    async def scenario():
        calls = []

        async def callback():
            calls.append(clock.now)

        task = ScheduledTask.once(callback, 2, clock=clock)
        task.start()
        await clock.advance(10)
        return calls

    assert asyncio.run(scenario()) == [2]


def test_stop_from_inside_callback(clock):
    async def scenario():
        calls = []
        holder = {}

        async def callback():
            calls.append(clock.now)
            holder["task"].stop()

        holder["task"] = ScheduledTask(callback, 1, clock=clock)
        holder["task"].start()
        await clock.advance(5)
        return calls

    assert asyncio.run(scenario()) == [1]


def test_callback_errors_do_not_stop_the_task(clock):
    async def scenario():
        calls = []

        async def callback():
            calls.append(clock.now)
            raise RuntimeError("boom")

        task = ScheduledTask(callback, 1, clock=clock)
        task.start()
        await clock.advance(3)
        task.stop()
        return calls

    assert asyncio.run(scenario()) == [1, 2, 3]


def test_invalid_interval_rejected():
    async def noop():
        pass

    with pytest.raises(ValueError):
        ScheduledTask(noop, 0)
