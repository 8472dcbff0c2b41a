from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Set, Tuple, Union
import asyncio
import inspect
import logging

from ..models import SessionSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[SessionSnapshot], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class SessionEventChannel:
    """
    Ordered delivery of session snapshots to subscribers.

    publish() only enqueues; a dispatcher task delivers snapshots one at a
    time in publish order, so subscribers may call back into the orchestrator.
    Once the final snapshot of a run (a terminal state) is published, later
    snapshots of that run are dropped. A retry starts a new run.
    """

    def __init__(self):
        self._listeners: List[Tuple[Optional[str], SnapshotCallback]] = []
        self._queue: Deque[SessionSnapshot] = deque()
        self._finished: Set[Tuple[str, int]] = set()
        self._latest_session: Optional[str] = None
        self._dispatcher: Optional[asyncio.Task] = None

    def subscribe(self, callback: SnapshotCallback, session_id: Optional[str] = None) -> Unsubscribe:
        """Subscribe to snapshots of one session, or of every session if session_id is None."""
        entry = (session_id, callback)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, snapshot: SessionSnapshot) -> bool:
        """Queue snapshot for delivery. Returns False if it was dropped."""
        if snapshot.session_id != self._latest_session:
            # Only the latest session's runs are tracked
            self._latest_session = snapshot.session_id
            self._finished = {run for run in self._finished if run[0] == snapshot.session_id}

        run = (snapshot.session_id, snapshot.retry_count)
        if run in self._finished:
            logger.debug(f"Dropped {snapshot.state.value} event after final event of {snapshot.session_id}")
            return False
        if snapshot.is_terminal:
            self._finished.add(run)

        self._queue.append(snapshot)
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.get_running_loop().create_task(self._dispatch())
        return True

    async def join(self) -> None:
        """Wait until every queued snapshot has been delivered."""
        while True:
            dispatcher = self._dispatcher
            if dispatcher is None or dispatcher.done() or dispatcher is asyncio.current_task():
                return
            await asyncio.wait({dispatcher})

    async def _dispatch(self) -> None:
        while self._queue:
            snapshot = self._queue.popleft()
            for session_id, callback in self._listeners[:]:  # Copy list to avoid modification during iteration
                if session_id is not None and session_id != snapshot.session_id:
                    continue
                try:
                    result = callback(snapshot)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error in session listener for {snapshot.session_id}: {e}")
