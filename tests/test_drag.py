"""
Tests for the drag session controller.

Covers:
    - resolve_drop_target()  — column vs task targets, after/before rule, no-ops
    - DragSessionController  — drag-over speculation, commit, cancel, failure
"""

import asyncio
import threading

import pytest

from pkg.taskboard.drag import (
    DragSessionController, DragState, LocalMoveClient, resolve_drop_target,
)
from pkg.taskboard.errors import Conflict
from pkg.taskboard.projection import column_ids, project
from pkg.taskboard.schema import ColumnId, Task

TODO, DOING = ColumnId.TODO, ColumnId.DOING


def _columns():
    tasks = [Task(id=tid, board_id="b1", column_id=TODO, order=i, title=tid)
             for i, tid in enumerate("abcd")]
    tasks += [Task(id=tid, board_id="b1", column_id=DOING, order=i, title=tid)
              for i, tid in enumerate("ef")]
    return project(tasks)


class TestResolveDropTarget:

    def setup_method(self):
        self.columns = _columns()

    def test_downward_over_task_drops_after_it(self):
        r = resolve_drop_target(self.columns, "a", "c")
        assert (r.column, r.index, r.target_order) == (TODO, 3, 2)
        assert not r.is_noop

    def test_upward_over_task_drops_before_it(self):
        r = resolve_drop_target(self.columns, "d", "b")
        assert (r.column, r.index, r.target_order) == (TODO, 1, 1)

    def test_onto_next_task_swaps(self):
        r = resolve_drop_target(self.columns, "a", "b")
        assert (r.index, r.target_order) == (2, 1)
        assert not r.is_noop

    def test_column_target_drops_at_end(self):
        r = resolve_drop_target(self.columns, "a", "doing")
        assert (r.column, r.index, r.target_order) == (DOING, 2, 2)

    def test_cross_column_over_task_inserts_before(self):
        r = resolve_drop_target(self.columns, "e", "b")
        assert (r.column, r.index, r.target_order) == (TODO, 1, 1)

    def test_own_column_moves_to_end(self):
        r = resolve_drop_target(self.columns, "b", "todo")
        assert (r.index, r.target_order) == (4, 3)
        assert not r.is_noop

    def test_no_displacement_is_noop(self):
        assert resolve_drop_target(self.columns, "d", "todo").is_noop
        assert resolve_drop_target(self.columns, "b", "b").is_noop

    def test_unknown_ids(self):
        assert resolve_drop_target(self.columns, "a", "ghost") is None
        assert resolve_drop_target(self.columns, "ghost", "a") is None
        assert resolve_drop_target(self.columns, "a", None) is None
        assert resolve_drop_target(self.columns, "a", {"id": "b"}) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Controller against a real engine
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RecordingMoveClient:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def __call__(self, task_id, target_column, target_order):
        self.calls.append((task_id, target_column, target_order))
        if self.error:
            raise self.error
        return task_id


@pytest.fixture
def ids(seed):
    ids = seed("todo", "T1", "T2", "T3")
    ids.update(seed("doing", "T4"))
    return ids


@pytest.fixture
def make_controller(events, board_id):
    def _make(move_client, **kwargs):
        controller = DragSessionController(move_client, **kwargs)
        controller.attach(events, board_id)
        return controller
    return _make


def _titles(controller, column):
    return [t.title for t in controller.columns[ColumnId(column)]]


def test_drag_over_shows_speculative_order(make_controller, ids, engine, owner):
    controller = make_controller(LocalMoveClient(engine, owner))
    assert controller.on_drag_start(ids["T1"])
    assert controller.state == DragState.DRAGGING

    resolution = controller.on_drag_over(ids["T1"], ids["T3"])

    assert resolution.target_order == 2
    assert _titles(controller, "todo") == ["T2", "T3", "T1"]
    assert ids["T1"] in controller.tracker


def test_drag_end_commits_and_clears(make_controller, ids, engine, owner, titles):
    shown = []
    controller = make_controller(LocalMoveClient(engine, owner),
                                 on_change=lambda cols: shown.append(column_ids(cols)))
    controller.on_drag_start(ids["T1"])
    controller.on_drag_over(ids["T1"], ids["T3"])
    speculative = shown[-1]

    moved = asyncio.run(controller.on_drag_end(ids["T1"], ids["T3"]))

    assert moved == ids["T1"]
    assert controller.state == DragState.IDLE
    assert len(controller.tracker) == 0
    assert titles("todo") == ["T2", "T3", "T1"]
    assert column_ids(controller.columns) == speculative


def test_cross_column_drag(make_controller, ids, engine, owner, titles):
    controller = make_controller(LocalMoveClient(engine, owner))
    controller.on_drag_start(ids["T4"])
    controller.on_drag_over(ids["T4"], ids["T2"])
    assert _titles(controller, "todo") == ["T1", "T4", "T2", "T3"]

    asyncio.run(controller.on_drag_end(ids["T4"], ids["T2"]))

    assert titles("todo") == ["T1", "T4", "T2", "T3"]
    assert titles("doing") == []


def test_drop_without_drag_over_resolves_from_drop_target(make_controller, ids, titles):
    client = RecordingMoveClient()
    controller = make_controller(client)
    controller.on_drag_start(ids["T3"])

    asyncio.run(controller.on_drag_end(ids["T3"], "doing"))

    assert client.calls == [(ids["T3"], DOING, 1)]


def test_cancelled_drag_discards_speculation(make_controller, ids, titles):
    client = RecordingMoveClient()
    controller = make_controller(client)
    controller.on_drag_start(ids["T1"])
    controller.on_drag_over(ids["T1"], "doing")

    assert asyncio.run(controller.on_drag_end(ids["T1"], None)) is None

    assert client.calls == []
    assert len(controller.tracker) == 0
    assert controller.state == DragState.IDLE
    assert _titles(controller, "todo") == ["T1", "T2", "T3"]


def test_drop_on_unknown_target_cancels(make_controller, ids):
    client = RecordingMoveClient()
    controller = make_controller(client)
    controller.on_drag_start(ids["T1"])
    controller.on_drag_over(ids["T1"], "done")

    assert asyncio.run(controller.on_drag_end(ids["T1"], "task-ghost")) is None

    assert client.calls == []
    assert len(controller.tracker) == 0
    assert controller.state == DragState.IDLE


def test_failed_move_snaps_back_and_reports(make_controller, ids, engine, stranger):
    failures = []
    controller = make_controller(LocalMoveClient(engine, stranger),
                                 on_error=lambda tid, e: failures.append((tid, type(e).__name__)))
    controller.on_drag_start(ids["T1"])
    controller.on_drag_over(ids["T1"], "doing")

    assert asyncio.run(controller.on_drag_end(ids["T1"], "doing")) is None

    assert failures == [(ids["T1"], "Forbidden")]
    assert len(controller.tracker) == 0
    assert _titles(controller, "todo") == ["T1", "T2", "T3"]
    assert _titles(controller, "doing") == ["T4"]


def test_transport_failure_is_not_retried(make_controller, ids):
    client = RecordingMoveClient(error=Conflict("busy"))
    controller = make_controller(client, on_error=lambda tid, e: None)
    controller.on_drag_start(ids["T2"])
    controller.on_drag_over(ids["T2"], "done")
    asyncio.run(controller.on_drag_end(ids["T2"], "done"))
    assert len(client.calls) == 1
    assert controller.state == DragState.IDLE


def test_noop_hover_is_skipped(make_controller, ids):
    controller = make_controller(RecordingMoveClient())
    controller.on_drag_start(ids["T3"])
    assert controller.on_drag_over(ids["T3"], "todo") is None
    assert controller.on_drag_over(ids["T3"], ids["T3"]) is None
    assert len(controller.tracker) == 0


def test_dragging_back_to_origin_sends_nothing(make_controller, ids, events, board_id):
    client = RecordingMoveClient()
    controller = make_controller(client)
    version = events.version(board_id)
    controller.on_drag_start(ids["T1"])
    controller.on_drag_over(ids["T1"], ids["T3"])
    controller.on_drag_over(ids["T1"], ids["T2"])
    assert _titles(controller, "todo") == ["T1", "T2", "T3"]

    assert asyncio.run(controller.on_drag_end(ids["T1"], ids["T2"])) is None

    assert client.calls == []
    assert len(controller.tracker) == 0
    assert events.version(board_id) == version


def test_malformed_events_are_ignored(make_controller, ids):
    controller = make_controller(RecordingMoveClient())
    assert controller.on_drag_start(None) is False
    assert controller.on_drag_start("task-ghost") is False
    assert controller.state == DragState.IDLE
    assert controller.on_drag_over(ids["T1"], "doing") is None
    assert asyncio.run(controller.on_drag_end(ids["T1"], "doing")) is None

    controller.on_drag_start(ids["T1"])
    assert controller.on_drag_over(ids["T2"], "doing") is None
    assert controller.on_drag_over(ids["T1"], 42) is None
    assert controller.state == DragState.DRAGGING


def test_server_updates_reach_controller_on_loop_thread(events, board_id, engine, owner, ids):
    threads = set()
    controller = DragSessionController(
        LocalMoveClient(engine, owner),
        on_change=lambda cols: threads.add(threading.current_thread().name))

    async def drag():
        controller.attach(events, board_id)
        controller.on_drag_start(ids["T1"])
        controller.on_drag_over(ids["T1"], ids["T3"])
        moved = await controller.on_drag_end(ids["T1"], ids["T3"])
        return moved, threading.current_thread().name

    moved, loop_thread = asyncio.run(drag())

    assert moved == ids["T1"]
    assert threads == {loop_thread}
    assert _titles(controller, "todo") == ["T2", "T3", "T1"]
