"""Tests for the board/column projection."""

from pkg.taskboard.projection import column_ids, locate, project
from pkg.taskboard.schema import ColumnId, Task


def _task(tid, column, order, board="b1", created="2026-01-01T00:00:00"):
    return Task(id=tid, board_id=board, column_id=ColumnId(column), order=order,
                title=tid, created_at=created)


def test_empty_list_gives_three_empty_columns():
    columns = project([])
    assert list(columns) == [ColumnId.TODO, ColumnId.DOING, ColumnId.DONE]
    assert all(bucket == [] for bucket in columns.values())


def test_buckets_sorted_by_order():
    tasks = [_task("c", "todo", 2), _task("a", "todo", 0), _task("x", "done", 0),
             _task("b", "todo", 1)]
    assert column_ids(project(tasks)) == {"todo": ["a", "b", "c"], "doing": [], "done": ["x"]}


def test_tie_breaks_on_created_at_then_id():
    tasks = [
        _task("z", "doing", 0, created="2026-01-02T00:00:00"),
        _task("b", "doing", 0, created="2026-01-01T00:00:00"),
        _task("a", "doing", 0, created="2026-01-01T00:00:00"),
    ]
    assert column_ids(project(tasks))["doing"] == ["a", "b", "z"]


def test_filters_by_board():
    tasks = [_task("a", "todo", 0, board="b1"), _task("b", "todo", 0, board="b2")]
    assert column_ids(project(tasks, "b2"))["todo"] == ["b"]


def test_locate():
    columns = project([_task("a", "doing", 0), _task("b", "doing", 1)])
    assert locate(columns, "b") == (ColumnId.DOING, 1)
    assert locate(columns, "nope") is None
