"""
Event bridge: pushes board state to subscribers after each mutation.

Subscribers register per board id and receive the full, freshly read task
list whenever a create/move/update/delete on that board commits. Delivery
is at-least-once; a subscriber that raises is logged and skipped.

Every snapshot is stamped with the board version current when it was read.
A subscriber never receives a snapshot older than one it already has, so
two mutations publishing close together cannot leave it on the older board.
"""
import logging
import threading
from typing import Callable, Dict, List

from .schema import Task
from .store import TaskStore

logger = logging.getLogger(__name__)

TaskListCallback = Callable[[List[Task]], None]


class Subscription:
    """One callback plus the version of the last snapshot it was sent."""

    def __init__(self, board_id: str, callback: TaskListCallback):
        self.board_id = board_id
        self.callback = callback
        self.last_version = -1


class BoardEventBridge:
    """Routes board mutations to task-list subscribers."""

    def __init__(self, store: TaskStore):
        self.store = store
        self.subscribers: Dict[str, List[Subscription]] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()
        # held across check-and-call so deliveries to one callback stay ordered
        self._deliver_lock = threading.RLock()

    def subscribe(self, board_id: str, callback: TaskListCallback,
                  initial: bool = True) -> Callable[[], None]:
        """Register a callback for a board. Returns an unsubscribe function.

        With ``initial`` the callback immediately receives the current list,
        like a reactive query's first result.
        """
        sub = Subscription(board_id, callback)
        with self._lock:
            self.subscribers.setdefault(board_id, []).append(sub)
            version = self._versions.get(board_id, 0)

        def unsubscribe() -> None:
            with self._lock:
                subs = self.subscribers.get(board_id, [])
                if sub in subs:
                    subs.remove(sub)

        if initial:
            self._deliver(sub, version, self.store.list_tasks(board_id))
        return unsubscribe

    def version(self, board_id: str) -> int:
        """Count of committed mutations seen for a board in this process."""
        return self._versions.get(board_id, 0)

    def publish(self, board_id: str, reason: str = "") -> None:
        """Re-read the board and emit it to every subscriber."""
        with self._lock:
            version = self._versions[board_id] = self._versions.get(board_id, 0) + 1
            subs = list(self.subscribers.get(board_id, []))
        if not subs:
            return
        tasks = self.store.list_tasks(board_id)
        logger.debug(f"board {board_id} changed ({reason}); v{version} to {len(subs)}")
        for sub in subs:
            self._deliver(sub, version, tasks)

    def _deliver(self, sub: Subscription, version: int, tasks: List[Task]) -> None:
        with self._deliver_lock:
            if version <= sub.last_version:
                logger.debug(f"board {sub.board_id}: dropped stale v{version}")
                return
            sub.last_version = version
            try:
                sub.callback(list(tasks))
            except Exception as e:
                logger.warning(f"Error in board {sub.board_id} subscriber: {e}")
