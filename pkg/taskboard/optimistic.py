"""
Optimistic move tracker: client-side overlay of in-flight moves.

Holds at most one pending ``OptimisticUpdate`` per task. The speculative
board is the server-confirmed task list with every pending move replayed in
insertion order through the same planner the ordering engine persists
with. Nothing here is ever written to storage.

Transitions:
    track()   → entry inserted, or superseded (moved to the end of the queue)
    commit()  → move confirmed; entry cleared, next server read is truth
    revert()  → move failed; entry cleared, view snaps back to server state
"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from .ordering import apply_move
from .projection import Columns, locate, project
from .schema import ColumnId, OptimisticUpdate, Task

logger = logging.getLogger(__name__)


class OptimisticMoveTracker:
    """Map of task id → pending speculative move."""

    def __init__(self):
        self.pending: "OrderedDict[str, OptimisticUpdate]" = OrderedDict()

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.pending

    def __len__(self) -> int:
        return len(self.pending)

    def get(self, task_id: str) -> Optional[OptimisticUpdate]:
        return self.pending.get(task_id)

    def track(self, server_tasks: Iterable[Task], task_id: str,
              target_column: ColumnId, target_order: int) -> Optional[OptimisticUpdate]:
        """Record a speculative move for ``task_id``.

        The previous position is the task's server-confirmed one. Returns
        None when the task is not on the confirmed board (stale id).
        """
        where = locate(project(server_tasks), task_id)
        if where is None:
            logger.debug(f"optimistic move ignored; {task_id} not on board")
            return None
        update = OptimisticUpdate(
            task_id=task_id,
            target_column=target_column,
            target_order=target_order,
            previous_column=where[0],
            previous_order=where[1],
        )
        self.pending.pop(task_id, None)
        self.pending[task_id] = update
        return update

    def commit(self, task_id: str) -> Optional[OptimisticUpdate]:
        """The move request succeeded."""
        return self.pending.pop(task_id, None)

    def revert(self, task_id: str) -> Optional[OptimisticUpdate]:
        """The move request failed (or the drag was cancelled)."""
        update = self.pending.pop(task_id, None)
        if update is not None:
            logger.warning(
                f"reverted optimistic move of {task_id} to "
                f"{update.target_column.value}[{update.target_order}]"
            )
        return update

    def clear(self) -> None:
        self.pending.clear()

    def speculate(self, server_tasks: Iterable[Task]) -> List[Task]:
        """Server list with every pending move applied, oldest first."""
        tasks = list(server_tasks)
        for update in self.pending.values():
            tasks = apply_move(tasks, update.task_id, update.target_column, update.target_order)
        return tasks

    def project(self, server_tasks: Iterable[Task], board_id: Optional[str] = None) -> Columns:
        """The columns the user should see right now."""
        return project(self.speculate(server_tasks), board_id)

    def snapshot(self) -> Dict[str, OptimisticUpdate]:
        return dict(self.pending)
