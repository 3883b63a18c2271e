"""Shared async polling loop abstraction."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from warden.infrastructure.logger import logger


class PollLoop:
    """Calls an async function, sleeps for the interval, repeats until stopped.

    A failing tick is logged and the loop carries on with the next one.
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._stopped = False
        self._wake.clear()
        self._task = asyncio.create_task(self._loop(), name=f"{self._name}-loop")
        logger.info(f"{self._name} loop started", interval_s=self._interval)

    async def stop(self) -> None:
        """Stop the loop after the current tick finishes."""
        self._stopped = True
        self._wake.set()
        if self._task:
            try:
                await self._task
            finally:
                self._task = None
        logger.info(f"{self._name} loop stopped")

    def poke(self) -> None:
        """Skip the rest of the current sleep and tick now."""
        self._wake.set()

    async def _loop(self) -> None:
        while not self._stopped:
            try:
                await self._fn()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"Error in {self._name} loop")
            if self._stopped:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()


def start_poll_loop(name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval_s, fn)
    loop.start()
    return loop
