"""
Drag session controller.

Consumes drag-start / drag-over / drag-end gesture events, resolves the
hovered or dropped-on element into a concrete (column, index), drives the
optimistic tracker so the user sees the move immediately, and issues the
move request when the drag ends.

State machine:
    IDLE → DRAGGING → (COMMITTING | IDLE)

Gesture events that don't fit the current state are ignored, never raised.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .optimistic import OptimisticMoveTracker
from .projection import Columns, locate
from .schema import ColumnId, OptimisticUpdate, Task

logger = logging.getLogger(__name__)

# (task_id, target_column, target_order) -> task_id
MoveClient = Callable[[str, ColumnId, int], Awaitable[Any]]


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


@dataclass(frozen=True)
class DropResolution:
    """Where a drop on some element would put the dragged task.

    ``index`` is the insertion slot in the column as currently shown
    (0..len, counting the dragged task itself when it is in that column).
    ``target_order`` is the same slot expressed as the ordering engine
    expects it: the index after the dragged task has been removed.
    """
    column: ColumnId
    index: int
    target_order: int
    origin: Tuple[ColumnId, int]

    @property
    def is_noop(self) -> bool:
        """Dropping here would not displace the task."""
        column, index = self.origin
        return self.column == column and self.index in (index, index + 1)


def resolve_drop_target(columns: Columns, dragged_id: str,
                        target_id: Optional[str]) -> Optional[DropResolution]:
    """
    Resolve a hover/drop target id against the visible columns.

    - A column id drops at the end of that column.
    - A task id drops before that task, or after it when dragging
      downward within the same column. Cross-column drops onto a task
      always land before it.

    Returns None when the dragged task or the target is not on the board.
    """
    if not isinstance(dragged_id, str) or not isinstance(target_id, str):
        return None
    origin = locate(columns, dragged_id)
    if origin is None:
        return None

    if target_id in ColumnId.ids():
        column = ColumnId(target_id)
        index = len(columns[column])
    else:
        over = locate(columns, target_id)
        if over is None:
            return None
        column, over_index = over
        index = over_index
        if column == origin[0] and target_id != dragged_id and origin[1] < over_index:
            index = over_index + 1

    target_order = index
    if column == origin[0] and index > origin[1]:
        target_order = index - 1
    return DropResolution(column, index, target_order, origin)


class DragSessionController:
    """Drives one board's drag interactions."""

    def __init__(
        self,
        move_client: MoveClient,
        tracker: Optional[OptimisticMoveTracker] = None,
        on_error: Optional[Callable[[str, Exception], None]] = None,
        on_change: Optional[Callable[[Columns], None]] = None,
    ):
        self.move_client = move_client
        self.tracker = tracker or OptimisticMoveTracker()
        self.on_error = on_error
        self.on_change = on_change
        self.state = DragState.IDLE
        self.active_id: Optional[str] = None
        self.last_resolution: Optional[DropResolution] = None
        self.server_tasks: List[Task] = []
        self._session = 0
        self._session_update: Optional[OptimisticUpdate] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None

    # ── Server state ──

    def on_server_tasks(self, tasks: List[Task]) -> None:
        """Reactive-read callback: new confirmed task list."""
        self.server_tasks = list(tasks)
        self._changed()

    def attach(self, events, board_id: str) -> Callable[[], None]:
        """Subscribe to a board's task list. Returns the unsubscribe function."""
        self._bind_loop()
        return events.subscribe(board_id, self._on_published)

    def _bind_loop(self) -> None:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._loop_thread = threading.get_ident()

    def _on_published(self, tasks: List[Task]) -> None:
        """Hand server state to the loop thread when it arrives from elsewhere.

        The engine publishes from whichever thread committed the mutation
        (e.g. the worker behind ``LocalMoveClient``); the controller's state
        is only touched on the thread running its event loop.
        """
        loop = self._loop
        if loop is not None and loop.is_running() and threading.get_ident() != self._loop_thread:
            loop.call_soon_threadsafe(self.on_server_tasks, tasks)
        else:
            self.on_server_tasks(tasks)

    @property
    def columns(self) -> Columns:
        """Columns as the user sees them (confirmed + speculative)."""
        return self.tracker.project(self.server_tasks)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.columns)

    # ── Gesture events ──

    def on_drag_start(self, item_id: Any) -> bool:
        """IDLE/COMMITTING → DRAGGING. False when the item is unknown."""
        if self.state == DragState.DRAGGING or not isinstance(item_id, str):
            return False
        if locate(self.columns, item_id) is None:
            logger.debug(f"drag start on unknown item {item_id!r}")
            return False
        self._session += 1
        self.state = DragState.DRAGGING
        self.active_id = item_id
        self.last_resolution = None
        self._session_update = None
        return True

    def on_drag_over(self, item_id: Any, hover_target_id: Any) -> Optional[DropResolution]:
        """Apply a speculative move for the hovered target, unless it's a no-op."""
        if self.state != DragState.DRAGGING or item_id != self.active_id:
            return None
        resolution = resolve_drop_target(self.columns, item_id, hover_target_id)
        if resolution is None or resolution.is_noop:
            return None
        update = self.tracker.track(
            self.server_tasks, item_id, resolution.column, resolution.target_order)
        if update is None:
            return None
        self.last_resolution = resolution
        self._session_update = update
        self._changed()
        return resolution

    async def on_drag_end(self, item_id: Any, drop_target_id: Any = None) -> Optional[str]:
        """
        Finish the drag: cancel, or issue the move and reconcile.

        Returns the moved task id on success, None when nothing was sent or
        the request failed (failures go to ``on_error``).
        """
        if self.state != DragState.DRAGGING or item_id != self.active_id:
            return None
        session = self._session
        self._bind_loop()
        self.active_id = None
        update = self._session_update

        resolution = resolve_drop_target(self.columns, item_id, drop_target_id)
        if resolution is None:
            # dropped outside any column or task: cancelled
            if update is not None:
                self._discard(update, failed=True)
            self._finish(session)
            return None

        if update is None:
            if not resolution.is_noop:
                self.last_resolution = resolution
                update = self.tracker.track(
                    self.server_tasks, item_id, resolution.column, resolution.target_order)
        if update is None or not update.is_displacement:
            if update is not None:
                self._discard(update)
            self._finish(session)
            return None

        self.state = DragState.COMMITTING
        self._changed()
        try:
            await self.move_client(item_id, update.target_column, update.target_order)
        except Exception as e:
            self._discard(update, failed=True)
            logger.warning(f"move of {item_id} failed: {e}")
            if self.on_error is not None:
                self.on_error(item_id, e)
            return None
        else:
            self._discard(update)
            return item_id
        finally:
            self._finish(session)

    def _discard(self, update: OptimisticUpdate, failed: bool = False) -> None:
        """Clear the entry, unless a newer drag of the same task replaced it."""
        if self.tracker.get(update.task_id) is not update:
            return
        if failed:
            self.tracker.revert(update.task_id)
        else:
            self.tracker.commit(update.task_id)

    def _finish(self, session: int) -> None:
        # a drag that started while this one was committing owns the state
        if session == self._session:
            self.state = DragState.IDLE
        self._changed()


class LocalMoveClient:
    """Move client that calls an in-process ordering engine off the event loop."""

    def __init__(self, engine, caller: Optional[str]):
        self.engine = engine
        self.caller = caller

    async def __call__(self, task_id: str, target_column: ColumnId, target_order: int) -> str:
        return await asyncio.to_thread(
            self.engine.move, self.caller, task_id, target_column, target_order)
