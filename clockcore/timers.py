"""Owned repeating timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from .logging import get_logger

__all__ = ["RepeatingTimer", "TimerSlot"]


class RepeatingTimer:
    """Call ``callback`` every ``interval_s`` seconds until cancelled.

    Coroutine callbacks are awaited before the next sleep, so a slow
    resynchronisation never overlaps with itself.  The first call happens
    immediately unless ``immediate`` is false.
    """

    def __init__(
        self,
        interval_s: float,
        callback: Callable[[], Any],
        *,
        name: str = "timer",
        immediate: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.interval_s = max(0.0, float(interval_s))
        self.name = name
        self.ticks = 0
        self._callback = callback
        self._immediate = immediate
        self._task: Optional[asyncio.Task[None]] = None
        self._cancelled = False
        self._log = logger or get_logger("core.timers")

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def start(self) -> "RepeatingTimer":
        """Schedule the timer on the running loop."""

        if self._task is not None:
            return self
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        return self

    def cancel(self) -> None:
        """Stop the timer; safe to call from inside its own callback."""

        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """Wait until the timer task has finished."""

        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self) -> None:
        if not self._immediate:
            await asyncio.sleep(self.interval_s)
        while not self._cancelled:
            self.ticks += 1
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("timer=%s status=callback_failed", self.name)
            if self._cancelled:
                break
            await asyncio.sleep(self.interval_s)


class TimerSlot:
    """Holds at most one live timer; installing a new one cancels the old."""

    def __init__(self) -> None:
        self._timer: Optional[RepeatingTimer] = None

    @property
    def timer(self) -> Optional[RepeatingTimer]:
        return self._timer

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.active

    def replace(self, timer: RepeatingTimer) -> RepeatingTimer:
        self.cancel()
        self._timer = timer
        return timer.start()

    def cancel(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
