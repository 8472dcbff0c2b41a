"""
Synthetic progress for an opaque transfer.

The storage backends report nothing until the upload settles, so the bar is
driven by a timer: strictly increasing ticks up to a ceiling that leaves the
rest of the range to the resolve and metadata phases.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Union[None, Awaitable[None]]]


class ProgressEstimator:
    """
    Emits progress values at a fixed interval while a transfer is in flight.

    One-shot: after stop() the estimator never ticks again and cannot be
    restarted.
    """

    def __init__(
        self,
        on_tick: TickCallback,
        interval: float,
        ceiling: int,
        step: int = 5,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._ceiling = min(int(ceiling), 100)
        self._step = max(int(step), 1)
        self._current = 0
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self._in_callback = False

    @property
    def current(self) -> int:
        return self._current

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self, from_percent: int = 0) -> None:
        if self._stopped:
            raise RuntimeError("ProgressEstimator cannot be restarted after stop()")
        if self._task is not None:
            raise RuntimeError("ProgressEstimator already started")
        self._current = int(from_percent)
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Stop ticking. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        # A tick being delivered is allowed to finish; the loop exits after it.
        if self._task is not None and not self._task.done() and not self._in_callback:
            self._task.cancel()

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._interval)
            if self._stopped:
                return

            next_value = min(self._current + self._step, self._ceiling)
            if next_value <= self._current:
                return
            self._current = next_value

            self._in_callback = True
            try:
                result = self._on_tick(next_value)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[progress] Tick callback failed: {e}", exc_info=True)
            finally:
                self._in_callback = False

            if next_value >= self._ceiling:
                logger.debug(f"[progress] Reached ceiling {self._ceiling}%")
                return
