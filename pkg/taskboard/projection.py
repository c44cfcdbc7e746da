"""Group a flat task list into the three board columns."""
from typing import Dict, Iterable, List, Optional

from .ordering import sort_key
from .schema import ColumnId, Task

Columns = Dict[ColumnId, List[Task]]


def project(tasks: Iterable[Task], board_id: Optional[str] = None) -> Columns:
    """
    Bucket tasks by column, each bucket sorted by order ascending.

    Ties (never produced by the engine) fall back to created_at, then id,
    so output is deterministic. ``board_id`` filters to a single board.
    """
    columns: Columns = {column: [] for column in ColumnId}
    for task in tasks:
        if board_id is not None and task.board_id != board_id:
            continue
        columns[task.column_id].append(task)
    for bucket in columns.values():
        bucket.sort(key=sort_key)
    return columns


def column_ids(columns: Columns) -> Dict[str, List[str]]:
    """``{"todo": [task ids...], ...}`` view, handy for JSON and asserts."""
    return {column.value: [t.id for t in bucket] for column, bucket in columns.items()}


def locate(columns: Columns, task_id: str) -> Optional[tuple]:
    """(column, index) of a task in a projection, or None."""
    for column, bucket in columns.items():
        for i, task in enumerate(bucket):
            if task.id == task_id:
                return column, i
    return None
