"""Shared fixtures for task board tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.taskboard.boards import BoardService
from pkg.taskboard.events import BoardEventBridge
from pkg.taskboard.ordering import OrderingEngine
from pkg.taskboard.schema import ColumnId
from pkg.taskboard.store import TaskStore


@pytest.fixture
def store(tmp_path):
    return TaskStore(str(tmp_path / "taskboard.db"))


@pytest.fixture
def events(store):
    return BoardEventBridge(store)


@pytest.fixture
def engine(store, events):
    return OrderingEngine(store, events=events)


@pytest.fixture
def boards(store, engine):
    return BoardService(store, engine, engine.authorizer)


@pytest.fixture
def owner(boards):
    return boards.register_user("owner@example.com", "Owner")


@pytest.fixture
def stranger(boards):
    return boards.register_user("stranger@example.com", "Stranger")


@pytest.fixture
def board_id(boards, owner):
    return boards.create_board(owner, "Sprint board")


@pytest.fixture
def seed(engine, owner, board_id):
    """seed("todo", "T1", "T2") -> {"T1": id, "T2": id}, appended in order."""
    def _seed(column, *titles):
        return {
            title: engine.create_task(owner, board_id=board_id, title=title, column_id=column)
            for title in titles
        }
    return _seed


@pytest.fixture
def titles(store, board_id):
    """titles("todo") -> task titles in partition order."""
    def _titles(column):
        return [t.title for t in store.list_partition(board_id, ColumnId(column))]
    return _titles


def assert_dense(store, board_id):
    """Every partition of the board holds orders 0..n-1 exactly."""
    for column in ColumnId:
        orders = sorted(t.order for t in store.list_partition(board_id, column))
        assert orders == list(range(len(orders))), (column, orders)


@pytest.fixture
def dense(store):
    return lambda board_id: assert_dense(store, board_id)
