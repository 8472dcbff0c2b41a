"""Deadline and cancellation token threaded through every suspending step."""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..exceptions import DeadlineExceeded, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation flag for one pipeline run.

    Anything that settles after the token is cancelled must be ignored by
    whoever awaited it.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled("Operation was cancelled")


class Deadline:
    """Absolute point in loop time after which an operation has lost its race."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._expires_at = asyncio.get_running_loop().time() + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


async def run_with_deadline(
    aw: Awaitable[T],
    deadline: Deadline,
    token: Optional[CancellationToken] = None,
) -> T:
    """
    Race aw against deadline; whichever settles first wins.

    On timeout the operation is cancelled and whatever it still produces is
    discarded, then DeadlineExceeded is raised.
    """
    if token is not None:
        token.raise_if_cancelled()

    task = asyncio.ensure_future(aw)
    try:
        done, _ = await asyncio.wait({task}, timeout=deadline.remaining())
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_late_result)
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_late_result)
    raise DeadlineExceeded(deadline.timeout)


def _discard_late_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"[deadline] Discarded late failure: {exc!r}")
    else:
        logger.warning("[deadline] Discarded result that arrived after the deadline")
