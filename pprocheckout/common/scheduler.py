"""Cancellable periodic tasks on the asyncio loop.

Page controllers use these for countdowns, status polling and delayed
re-checks. The clock is injectable so tests can drive virtual time.
"""

import asyncio
import time
from typing import Awaitable, Callable, Protocol

from pprocheckout.common.logging import logger

AsyncCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by `time.monotonic` and `asyncio.sleep`."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ScheduledTask:
    """Run `callback` every `interval` seconds until stopped.

    With `duration` set, the task ends once that many seconds have passed since
    `start()` and `on_expire` is awaited. With `max_runs` set, it ends after the
    callback has run that many times. `stop()` is safe to call from inside the
    callback.
    """

    def __init__(
        self,
        callback: AsyncCallback,
        interval: float,
        *,
        duration: float | None = None,
        max_runs: int | None = None,
        on_expire: AsyncCallback | None = None,
        clock: Clock | None = None,
        name: str = "scheduled-task",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.duration = duration
        self.max_runs = max_runs
        self.name = name
        self.runs = 0
        self._callback = callback
        self._on_expire = on_expire
        self._clock = clock or SystemClock()
        self._started_at: float | None = None
        self._task: asyncio.Task | None = None
        self._stopped = False

    @classmethod
    def once(cls, callback: AsyncCallback, delay: float, *, clock: Clock | None = None, name: str = "delayed-task"):
        """Build a task that runs `callback` a single time after `delay` seconds."""

        return cls(callback, delay, max_runs=1, clock=clock, name=name)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def remaining(self) -> float | None:
        """Seconds left before expiry, or None when the task has no duration."""

        if self.duration is None:
            return None
        if self._started_at is None:
            return float(self.duration)
        return max(0.0, self._started_at + self.duration - self._clock.monotonic())

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._started_at = self._clock.monotonic()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        self._stopped = True
        task = self._task
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

    async def wait(self) -> None:
        """Block until the task finishes, swallowing its own cancellation."""

        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self) -> None:
        while not self._stopped:
            delay = self.interval
            remaining = self.remaining()
            if remaining is not None:
                delay = min(delay, remaining)
            await self._clock.sleep(delay)
            if self._stopped:
                return
            self.runs += 1
            try:
                await self._callback()
            except Exception as exc:
                logger.error("scheduled_task_error task=%s error=%s", self.name, exc)
            if self._stopped:
                return
            if self.max_runs is not None and self.runs >= self.max_runs:
                self._stopped = True
                return
            if remaining is not None and self.remaining() <= 0:
                self._stopped = True
                if self._on_expire is not None:
                    await self._on_expire()
                return
