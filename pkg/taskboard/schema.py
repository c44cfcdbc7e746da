"""
Task board schema.

Board layout:
  todo → doing → done   (three fixed columns per board)

Every (board, column) pair is a partition whose tasks carry a dense
``order`` sequence 0..n-1. Only the ordering engine writes ``order``.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds (sortable as text)."""
    return datetime.now(timezone.utc).isoformat()


class ColumnId(Enum):
    """The three fixed board columns, in display order."""
    TODO = "todo"
    DOING = "doing"
    DONE = "done"

    @classmethod
    def from_str(cls, value: str) -> "ColumnId":
        """Strict parse. Raises ValueError for anything but todo/doing/done."""
        return cls(str(value).strip().lower())

    @classmethod
    def ids(cls) -> tuple:
        return tuple(c.value for c in cls)


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: str) -> "Priority":
        return cls(str(value).strip().lower())


class Role(Enum):
    """Board membership roles."""
    OWNER = "owner"
    MEMBER = "member"


@dataclass
class Task:
    """A single card on a board."""

    id: str
    board_id: str
    column_id: ColumnId
    order: int
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[str] = None     # ISO date, stored as given
    created_at: str = field(default_factory=utc_now)

    @property
    def partition(self) -> tuple:
        return (self.board_id, self.column_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "column_id": self.column_id.value,
            "order": self.order,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "due_date": self.due_date,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            board_id=data["board_id"],
            column_id=ColumnId(data["column_id"]),
            order=int(data["order"]),
            title=data.get("title", ""),
            description=data.get("description"),
            priority=Priority(data.get("priority") or "medium"),
            due_date=data.get("due_date"),
            created_at=data.get("created_at") or utc_now(),
        )

    def moved(self, column_id: ColumnId, order: int) -> "Task":
        """Copy of this task placed at (column_id, order)."""
        data = self.to_dict()
        data["column_id"] = column_id.value
        data["order"] = order
        return Task.from_dict(data)


@dataclass
class Board:
    id: str
    title: str
    color: str = "blue"
    description: Optional[str] = None
    owner_id: str = ""
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "description": self.description,
            "owner_id": self.owner_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            color=data.get("color") or "blue",
            description=data.get("description"),
            owner_id=data.get("owner_id") or "",
            created_at=data.get("created_at") or utc_now(),
        )


@dataclass
class User:
    id: str
    email: str
    name: str = ""
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name,
                "created_at": self.created_at}


@dataclass
class Membership:
    board_id: str
    user_id: str
    role: Role = Role.MEMBER
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "user_id": self.user_id,
            "role": self.role.value,
            "created_at": self.created_at,
        }


@dataclass
class Invitation:
    """A pending invite for an email that has no account yet."""
    id: str
    board_id: str
    email: str
    invited_by: str
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "email": self.email,
            "invited_by": self.invited_by,
            "created_at": self.created_at,
        }


@dataclass
class Note:
    id: str
    task_id: str
    content: str
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "task_id": self.task_id,
                "content": self.content, "created_at": self.created_at}


@dataclass(frozen=True)
class MoveRequest:
    """Move ``task_id`` to index ``target_order`` of ``target_column``."""
    task_id: str
    target_column: ColumnId
    target_order: int


@dataclass(frozen=True)
class OptimisticUpdate:
    """An in-flight speculative move, keyed by task id in the tracker."""
    task_id: str
    target_column: ColumnId
    target_order: int
    previous_column: ColumnId
    previous_order: int

    @property
    def request(self) -> MoveRequest:
        return MoveRequest(self.task_id, self.target_column, self.target_order)

    @property
    def is_displacement(self) -> bool:
        """False when the update puts the task back where the server has it."""
        return (self.target_column, self.target_order) != (
            self.previous_column, self.previous_order)
