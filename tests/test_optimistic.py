"""Tests for the optimistic move tracker."""

from pkg.taskboard.optimistic import OptimisticMoveTracker
from pkg.taskboard.projection import column_ids, project
from pkg.taskboard.schema import ColumnId, Task

TODO, DOING, DONE = ColumnId.TODO, ColumnId.DOING, ColumnId.DONE


def _board():
    return [
        Task(id="a0", board_id="b1", column_id=TODO, order=0, title="a0"),
        Task(id="a1", board_id="b1", column_id=TODO, order=1, title="a1"),
        Task(id="a2", board_id="b1", column_id=TODO, order=2, title="a2"),
        Task(id="b0", board_id="b1", column_id=DOING, order=0, title="b0"),
    ]


class TestOptimisticMoveTracker:

    def setup_method(self):
        self.tracker = OptimisticMoveTracker()
        self.server = _board()

    def test_track_records_previous_position(self):
        update = self.tracker.track(self.server, "a2", DOING, 0)
        assert (update.previous_column, update.previous_order) == (TODO, 2)
        assert "a2" in self.tracker

    def test_speculative_projection_mirrors_engine(self):
        self.tracker.track(self.server, "a2", DOING, 0)
        columns = self.tracker.project(self.server)
        assert column_ids(columns) == {"todo": ["a0", "a1"], "doing": ["a2", "b0"], "done": []}
        assert [t.order for t in columns[DOING]] == [0, 1]

    def test_server_list_is_not_modified(self):
        self.tracker.track(self.server, "a0", DONE, 0)
        self.tracker.speculate(self.server)
        assert [(t.id, t.column_id, t.order) for t in self.server] == [
            (t.id, t.column_id, t.order) for t in _board()]

    def test_newer_update_supersedes(self):
        self.tracker.track(self.server, "a0", DONE, 0)
        self.tracker.track(self.server, "a0", DOING, 1)
        assert len(self.tracker) == 1
        assert self.tracker.get("a0").target_column == DOING
        assert column_ids(self.tracker.project(self.server))["doing"] == ["b0", "a0"]

    def test_updates_for_different_tasks_apply_in_order(self):
        self.tracker.track(self.server, "a0", DONE, 0)
        self.tracker.track(self.server, "a1", DONE, 0)
        columns = self.tracker.project(self.server)
        assert column_ids(columns)["done"] == ["a1", "a0"]
        assert column_ids(columns)["todo"] == ["a2"]

    def test_revert_falls_back_to_server_state(self):
        self.tracker.track(self.server, "a2", DOING, 0)
        self.tracker.revert("a2")
        assert "a2" not in self.tracker
        assert column_ids(self.tracker.project(self.server)) == column_ids(project(self.server))

    def test_commit_clears_entry(self):
        self.tracker.track(self.server, "a2", DOING, 0)
        assert self.tracker.commit("a2").task_id == "a2"
        assert len(self.tracker) == 0
        assert self.tracker.commit("a2") is None

    def test_unknown_task_not_tracked(self):
        assert self.tracker.track(self.server, "ghost", TODO, 0) is None
        assert len(self.tracker) == 0

    def test_update_back_to_origin_is_not_a_displacement(self):
        update = self.tracker.track(self.server, "a1", TODO, 1)
        assert not update.is_displacement


def test_reconciles_with_confirmed_server_state(engine, owner, seed, store, board_id):
    ids = seed("todo", "A", "B", "C")
    seed("doing", "D")
    tracker = OptimisticMoveTracker()
    server = store.list_tasks(board_id)

    tracker.track(server, ids["B"], DOING, 1)
    shown = tracker.project(server)

    engine.move(owner, ids["B"], "doing", 1)
    tracker.commit(ids["B"])
    confirmed = tracker.project(store.list_tasks(board_id))

    assert ids["B"] not in tracker
    for column in ColumnId:
        assert [(t.id, t.order) for t in confirmed[column]] == [
            (t.id, t.order) for t in shown[column]]
