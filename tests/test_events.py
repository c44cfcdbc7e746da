"""
Tests for the board event bridge.

Covers:
    - subscribe()  — initial delivery, unsubscribe, failing subscribers
    - publish()    — version stamps, stale snapshots never delivered last
"""

from pkg.taskboard.projection import project
from pkg.taskboard.schema import ColumnId


def _todo(tasks):
    return [t.title for t in project(tasks)[ColumnId.TODO]]


def test_initial_delivery_and_unsubscribe(engine, owner, seed, events, board_id):
    seed("todo", "A")
    received = []
    unsubscribe = events.subscribe(board_id, lambda tasks: received.append(_todo(tasks)))
    assert received == [["A"]]

    unsubscribe()
    engine.create_task(owner, board_id=board_id, title="B")
    assert received == [["A"]]


def test_version_counts_mutations(engine, owner, seed, events, board_id):
    ids = seed("todo", "A", "B")
    version = events.version(board_id)
    engine.move(owner, ids["B"], "todo", 0)
    engine.update_task(owner, ids["A"], title="A2")
    engine.delete_task(owner, ids["B"])
    assert events.version(board_id) == version + 3


def test_failing_subscriber_does_not_block_others(engine, owner, seed, events, board_id):
    ids = seed("todo", "A", "B")
    received = []

    def broken(tasks):
        raise RuntimeError("render failed")

    events.subscribe(board_id, broken, initial=False)
    events.subscribe(board_id, lambda tasks: received.append(_todo(tasks)), initial=False)
    engine.move(owner, ids["B"], "todo", 0)
    assert received == [["B", "A"]]


def test_older_snapshot_is_not_delivered_after_newer(
        engine, owner, seed, store, events, board_id, monkeypatch):
    ids = seed("todo", "A", "B", "C")
    received = []
    events.subscribe(board_id, lambda tasks: received.append(_todo(tasks)), initial=False)

    real_list_tasks = store.list_tasks
    interleaved = []

    def list_tasks(board, conn=None):
        snapshot = real_list_tasks(board, conn=conn)
        if not interleaved:
            # another move commits and publishes before this snapshot goes out
            interleaved.append(True)
            engine.move(owner, ids["A"], "todo", 2)
        return snapshot

    monkeypatch.setattr(store, "list_tasks", list_tasks)
    engine.move(owner, ids["C"], "todo", 0)

    final = _todo(real_list_tasks(board_id))
    assert final == ["C", "B", "A"]
    assert received == [final]


def test_late_initial_snapshot_is_dropped(engine, owner, seed, store, events, board_id,
                                          monkeypatch):
    ids = seed("todo", "A", "B")
    received = []
    real_list_tasks = store.list_tasks

    def list_tasks(board, conn=None):
        snapshot = real_list_tasks(board, conn=conn)
        monkeypatch.setattr(store, "list_tasks", real_list_tasks)
        engine.move(owner, ids["B"], "todo", 0)
        return snapshot

    monkeypatch.setattr(store, "list_tasks", list_tasks)
    events.subscribe(board_id, lambda tasks: received.append(_todo(tasks)))

    assert received == [["B", "A"]]
