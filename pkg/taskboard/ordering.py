"""
Ordering engine: keeps every (board, column) partition dense.

After any successful move, create or delete, the ``order`` values inside a
partition are exactly 0..n-1. Moves rewrite every task of each affected
partition to its positional index.

The planners (``splice``, ``renumber``, ``apply_move``) are pure and are
shared with the client-side optimistic tracker, so the speculative layout a
user sees is computed by the same code the server persists with.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .access import MembershipAuthorizer
from .commands import (
    CreateTaskCommand, DeleteTaskCommand, MoveTaskCommand, UpdateTaskCommand,
)
from .errors import NotFound
from .events import BoardEventBridge
from .schema import ColumnId, Task
from .store import Position, TaskStore, new_id

logger = logging.getLogger(__name__)

Layout = Dict[ColumnId, List[Task]]


# ── Pure planners ────────────────────────────────────────────────


def sort_key(task: Task) -> tuple:
    """Partition order, falling back to creation time then id."""
    return (task.order, task.created_at, task.id)


def clamp_order(order: int, upper: int) -> int:
    return max(0, min(order, upper))


def splice(
    source: List[Task],
    target: Optional[List[Task]],
    task_id: str,
    target_column: ColumnId,
    target_order: int,
) -> Optional[Layout]:
    """
    Plan a move inside ordered partitions.

    Args:
        source: ordered partition that holds the task
        target: ordered target partition, or None for a same-column move
        task_id: task being moved
        target_column: destination column
        target_order: insertion index in the destination after removal

    Returns:
        The new ordered lists of every affected partition, or None when the
        move leaves the task where it is.
    """
    index = next((i for i, t in enumerate(source) if t.id == task_id), None)
    if index is None:
        raise NotFound(f"Task {task_id} not in its partition")
    moved = source[index]
    remaining = source[:index] + source[index + 1:]

    if target is None or target_column == moved.column_id:
        order = clamp_order(target_order, len(remaining))
        if order == index:
            return None
        remaining.insert(order, moved)
        return {moved.column_id: remaining}

    dest = [t for t in target if t.id != task_id]
    order = clamp_order(target_order, len(dest))
    dest.insert(order, moved)
    return {moved.column_id: remaining, target_column: dest}


def renumber(layout: Layout) -> List[Position]:
    """Positional (task_id, column, order) for every task in the layout."""
    return [
        (task.id, column, i)
        for column, tasks in layout.items()
        for i, task in enumerate(tasks)
    ]


def partition_of(tasks: List[Task], board_id: str, column_id: ColumnId) -> List[Task]:
    return sorted(
        (t for t in tasks if t.board_id == board_id and t.column_id == column_id),
        key=sort_key,
    )


def apply_move(tasks: List[Task], task_id: str, target_column: ColumnId,
               target_order: int) -> List[Task]:
    """Flat-list version of a move, as the server would persist it.

    Unknown task ids leave the list unchanged.
    """
    moved = next((t for t in tasks if t.id == task_id), None)
    if moved is None:
        return list(tasks)
    source = partition_of(tasks, moved.board_id, moved.column_id)
    target = None
    if target_column != moved.column_id:
        target = partition_of(tasks, moved.board_id, target_column)
    layout = splice(source, target, task_id, target_column, target_order)
    if layout is None:
        return list(tasks)
    placed = {tid: (column, order) for tid, column, order in renumber(layout)}
    result = []
    for task in tasks:
        if task.id in placed and (task.column_id, task.order) != placed[task.id]:
            task = task.moved(*placed[task.id])
        result.append(task)
    return result


# ── Engine ───────────────────────────────────────────────────────


class OrderingEngine:
    """Serialized move/create/update/delete entry points for board tasks."""

    def __init__(
        self,
        store: TaskStore,
        authorizer: Optional[MembershipAuthorizer] = None,
        events: Optional[BoardEventBridge] = None,
    ):
        self.store = store
        self.authorizer = authorizer or MembershipAuthorizer(store)
        self.events = events
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def board_lock(self, board_id: str) -> threading.Lock:
        """The mutex that serializes all ordering writes on one board."""
        with self._registry_lock:
            lock = self._locks.get(board_id)
            if lock is None:
                lock = self._locks[board_id] = threading.Lock()
            return lock

    @contextmanager
    def _exclusive(self, board_id: str) -> Iterator:
        with self.board_lock(board_id):
            with self.store.transaction() as conn:
                yield conn

    def _board_of(self, task_id: str) -> str:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task.board_id

    def _publish(self, board_id: str, reason: str) -> None:
        if self.events is not None:
            self.events.publish(board_id, reason)

    # ── move ──

    def move(self, caller: Optional[str], task_id: str, target_column, target_order) -> str:
        """moveTask(taskId, targetColumnId, targetOrder) -> taskId"""
        cmd = MoveTaskCommand.from_params({
            "task_id": task_id,
            "target_column": getattr(target_column, "value", target_column),
            "target_order": target_order,
        })
        return self.execute_move(cmd, caller)

    def execute_move(self, cmd: MoveTaskCommand, caller: Optional[str]) -> str:
        board_id = self._board_of(cmd.task_id)
        with self._exclusive(board_id) as conn:
            self.authorizer.require_member(board_id, caller, conn=conn)
            task = self.store.get_task(cmd.task_id, conn=conn)
            if task is None:
                raise NotFound(f"Task {cmd.task_id} not found")

            source = self.store.list_partition(board_id, task.column_id, conn=conn)
            target = None
            if cmd.target_column != task.column_id:
                target = self.store.list_partition(board_id, cmd.target_column, conn=conn)
            layout = splice(source, target, task.id, cmd.target_column, cmd.target_order)
            if layout is None:
                logger.debug(f"move {task.id}: already at {task.column_id.value}[{cmd.target_order}]")
                return task.id
            written = self.store.write_positions(renumber(layout), conn=conn)

        logger.info(
            f"moved {task.id} on {board_id}: {task.column_id.value}[{task.order}] -> "
            f"{cmd.target_column.value}[{cmd.target_order}] ({written} rows)"
        )
        self._publish(board_id, "task_moved")
        return task.id

    # ── create ──

    def create_task(self, caller: Optional[str], **params) -> str:
        """createTask(title, priority, columnId, boardId, ...) -> taskId"""
        return self.execute_create(CreateTaskCommand.from_params(params), caller)

    def execute_create(self, cmd: CreateTaskCommand, caller: Optional[str]) -> str:
        if self.store.get_board(cmd.board_id) is None:
            raise NotFound(f"Board {cmd.board_id} not found")
        with self._exclusive(cmd.board_id) as conn:
            self.authorizer.require_member(cmd.board_id, caller, conn=conn)
            order = self.store.count_partition(cmd.board_id, cmd.column_id, conn=conn)
            task = Task(
                id=new_id("task"),
                board_id=cmd.board_id,
                column_id=cmd.column_id,
                order=order,
                title=cmd.title,
                description=cmd.description,
                priority=cmd.priority,
                due_date=cmd.due_date,
            )
            self.store.insert_task(task, conn=conn)

        logger.info(f"created {task.id} at {cmd.board_id}/{cmd.column_id.value}[{order}]")
        self._publish(cmd.board_id, "task_created")
        return task.id

    # ── update ──

    def update_task(self, caller: Optional[str], task_id: str, **changes) -> str:
        """updateTask(id, title?, description?, priority?, dueDate?) -> id"""
        cmd = UpdateTaskCommand.from_params({"task_id": task_id, **changes})
        return self.execute_update(cmd, caller)

    def execute_update(self, cmd: UpdateTaskCommand, caller: Optional[str]) -> str:
        board_id = self._board_of(cmd.task_id)
        with self._exclusive(board_id) as conn:
            self.authorizer.require_member(board_id, caller, conn=conn)
            self.store.update_task_fields(cmd.task_id, cmd.changes, conn=conn)
        if cmd.changes:
            logger.info(f"updated {cmd.task_id}: {', '.join(sorted(cmd.changes))}")
            self._publish(board_id, "task_updated")
        return cmd.task_id

    # ── delete ──

    def delete_task(self, caller: Optional[str], task_id: str) -> str:
        """deleteTask(id) -> id"""
        return self.execute_delete(DeleteTaskCommand.from_params({"task_id": task_id}), caller)

    def execute_delete(self, cmd: DeleteTaskCommand, caller: Optional[str]) -> str:
        board_id = self._board_of(cmd.task_id)
        with self._exclusive(board_id) as conn:
            self.authorizer.require_member(board_id, caller, conn=conn)
            task = self.store.get_task(cmd.task_id, conn=conn)
            if task is None:
                raise NotFound(f"Task {cmd.task_id} not found")
            self.store.delete_task(task.id, conn=conn)
            remaining = self.store.list_partition(board_id, task.column_id, conn=conn)
            self.store.write_positions(renumber({task.column_id: remaining}), conn=conn)

        logger.info(f"deleted {task.id}; compacted {board_id}/{task.column_id.value}")
        self._publish(board_id, "task_deleted")
        return task.id
