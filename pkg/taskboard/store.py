"""
Task board storage backend (SQLite).

Plain record storage for tasks, boards, users, memberships, invitations
and notes. The store exposes filtered reads and raw writes only; the
ordering engine decides what ``order`` values to write.

Every method takes an optional ``conn``. Pass the connection yielded by
``transaction()`` to make several calls one atomic unit; without it each
call opens and closes its own connection.
"""
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from .config import DEFAULT_DB
from .errors import Conflict
from .schema import (
    Board, ColumnId, Invitation, Membership, Note, Role, Task, User,
)

logger = logging.getLogger(__name__)

# (task_id, column_id, order)
Position = Tuple[str, ColumnId, int]


def _connect(db_path: str, timeout: float = 10.0) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode.

    Autocommit mode: transactions are begun explicitly by ``transaction()``.
    """
    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def new_id(prefix: str) -> str:
    """Generate a unique record ID, e.g. ``task-3f9c0a1b2d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class TaskStore:
    """SQLite-backed store for board records."""

    def __init__(self, db_path: Optional[str] = None, timeout: float = 10.0):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(DEFAULT_DB)
        self.db_path = db_path
        self.timeout = timeout
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS boards (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    color TEXT DEFAULT 'blue',
                    description TEXT,
                    owner_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS board_members (
                    board_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'member',
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (board_id, user_id),
                    FOREIGN KEY (board_id) REFERENCES boards(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS board_invitations (
                    id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    invited_by TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (board_id) REFERENCES boards(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    column_id TEXT NOT NULL,
                    task_order INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (board_id) REFERENCES boards(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (task_id) REFERENCES tasks(id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_partition "
                "ON tasks(board_id, column_id, task_order)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_task ON notes(task_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_invitations_email "
                "ON board_invitations(email)"
            )

    # ── Connections ──────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write transaction. Rolls back on any exception."""
        conn = _connect(self.db_path, self.timeout)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise Conflict(f"board storage busy: {e}") from e
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        own = _connect(self.db_path, self.timeout)
        try:
            yield own
        finally:
            own.close()

    # ── Tasks ────────────────────────────────────────────────────

    def insert_task(self, task: Task, conn=None) -> None:
        with self._use(conn) as c:
            c.execute("""
                INSERT INTO tasks
                (id, board_id, column_id, task_order, title, description,
                 priority, due_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                task.id, task.board_id, task.column_id.value, task.order,
                task.title, task.description, task.priority.value,
                task.due_date, task.created_at,
            ))

    def get_task(self, task_id: str, conn=None) -> Optional[Task]:
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(self, board_id: str, conn=None) -> List[Task]:
        """All tasks on a board, in storage order (projection sorts)."""
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM tasks WHERE board_id = ? "
                "ORDER BY column_id, task_order, created_at, id",
                (board_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_partition(self, board_id: str, column_id: ColumnId, conn=None) -> List[Task]:
        """Tasks of one (board, column) partition by ascending order."""
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM tasks WHERE board_id = ? AND column_id = ? "
                "ORDER BY task_order, created_at, id",
                (board_id, column_id.value),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def count_partition(self, board_id: str, column_id: ColumnId, conn=None) -> int:
        with self._use(conn) as c:
            return c.execute(
                "SELECT COUNT(*) FROM tasks WHERE board_id = ? AND column_id = ?",
                (board_id, column_id.value),
            ).fetchone()[0]

    def count_board_tasks(self, board_id: str, conn=None) -> int:
        with self._use(conn) as c:
            return c.execute(
                "SELECT COUNT(*) FROM tasks WHERE board_id = ?", (board_id,)
            ).fetchone()[0]

    def update_task_fields(self, task_id: str, fields: dict, conn=None) -> None:
        """Patch content columns. Never used for column/order."""
        allowed = {"title", "description", "priority", "due_date"}
        updates = {k: v for k, v in fields.items() if k in allowed}
        if not updates:
            return
        assignments = ", ".join(f"{k} = ?" for k in updates)
        with self._use(conn) as c:
            c.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*updates.values(), task_id),
            )

    def write_positions(self, positions: Iterable[Position], conn=None) -> int:
        """Write (column, order) for each task. Returns rows written."""
        written = 0
        with self._use(conn) as c:
            for task_id, column_id, order in positions:
                c.execute(
                    "UPDATE tasks SET column_id = ?, task_order = ? WHERE id = ?",
                    (column_id.value, order, task_id),
                )
                written += 1
        return written

    def delete_task(self, task_id: str, conn=None) -> None:
        """Delete a task row and its notes."""
        with self._use(conn) as c:
            c.execute("DELETE FROM notes WHERE task_id = ?", (task_id,))
            c.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        data = dict(row)
        data["order"] = data.pop("task_order")
        return Task.from_dict(data)

    # ── Boards ───────────────────────────────────────────────────

    def insert_board(self, board: Board, conn=None) -> None:
        with self._use(conn) as c:
            c.execute("""
                INSERT INTO boards (id, title, color, description, owner_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (board.id, board.title, board.color, board.description,
                  board.owner_id, board.created_at))

    def get_board(self, board_id: str, conn=None) -> Optional[Board]:
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM boards WHERE id = ?", (board_id,)).fetchone()
        return Board.from_dict(dict(row)) if row else None

    def list_boards_for_user(self, user_id: str, conn=None) -> List[Board]:
        """Boards the user is a member of, newest first."""
        with self._use(conn) as c:
            rows = c.execute("""
                SELECT b.* FROM boards b
                JOIN board_members m ON m.board_id = b.id
                WHERE m.user_id = ?
                ORDER BY b.created_at DESC
            """, (user_id,)).fetchall()
        return [Board.from_dict(dict(r)) for r in rows]

    def update_board_fields(self, board_id: str, fields: dict, conn=None) -> None:
        allowed = {"title", "description", "color"}
        updates = {k: v for k, v in fields.items() if k in allowed}
        if not updates:
            return
        assignments = ", ".join(f"{k} = ?" for k in updates)
        with self._use(conn) as c:
            c.execute(
                f"UPDATE boards SET {assignments} WHERE id = ?",
                (*updates.values(), board_id),
            )

    def delete_board(self, board_id: str, conn=None) -> None:
        """Delete a board with its tasks, notes, members and invitations."""
        with self._use(conn) as c:
            c.execute(
                "DELETE FROM notes WHERE task_id IN "
                "(SELECT id FROM tasks WHERE board_id = ?)",
                (board_id,),
            )
            c.execute("DELETE FROM tasks WHERE board_id = ?", (board_id,))
            c.execute("DELETE FROM board_members WHERE board_id = ?", (board_id,))
            c.execute("DELETE FROM board_invitations WHERE board_id = ?", (board_id,))
            c.execute("DELETE FROM boards WHERE id = ?", (board_id,))

    # ── Users & membership ───────────────────────────────────────

    def insert_user(self, user: User, conn=None) -> None:
        with self._use(conn) as c:
            c.execute(
                "INSERT INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)",
                (user.id, user.email, user.name, user.created_at),
            )

    def get_user(self, user_id: str, conn=None) -> Optional[User]:
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User(**dict(row)) if row else None

    def get_user_by_email(self, email: str, conn=None) -> Optional[User]:
        with self._use(conn) as c:
            row = c.execute(
                "SELECT * FROM users WHERE email = ?", (email.lower(),)
            ).fetchone()
        return User(**dict(row)) if row else None

    def add_membership(self, membership: Membership, conn=None) -> None:
        with self._use(conn) as c:
            c.execute(
                "INSERT INTO board_members (board_id, user_id, role, created_at) "
                "VALUES (?, ?, ?, ?)",
                (membership.board_id, membership.user_id,
                 membership.role.value, membership.created_at),
            )

    def get_membership(self, board_id: str, user_id: str, conn=None) -> Optional[Membership]:
        with self._use(conn) as c:
            row = c.execute(
                "SELECT * FROM board_members WHERE board_id = ? AND user_id = ?",
                (board_id, user_id),
            ).fetchone()
        if not row:
            return None
        return Membership(row["board_id"], row["user_id"], Role(row["role"]),
                          row["created_at"])

    def list_memberships(self, board_id: str, conn=None) -> List[Membership]:
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM board_members WHERE board_id = ? ORDER BY created_at",
                (board_id,),
            ).fetchall()
        return [Membership(r["board_id"], r["user_id"], Role(r["role"]),
                           r["created_at"]) for r in rows]

    def remove_membership(self, board_id: str, user_id: str, conn=None) -> None:
        with self._use(conn) as c:
            c.execute(
                "DELETE FROM board_members WHERE board_id = ? AND user_id = ?",
                (board_id, user_id),
            )

    # ── Invitations ──────────────────────────────────────────────

    def insert_invitation(self, invitation: Invitation, conn=None) -> None:
        with self._use(conn) as c:
            c.execute(
                "INSERT INTO board_invitations (id, board_id, email, invited_by, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (invitation.id, invitation.board_id, invitation.email,
                 invitation.invited_by, invitation.created_at),
            )

    def get_invitation(self, invitation_id: str, conn=None) -> Optional[Invitation]:
        with self._use(conn) as c:
            row = c.execute(
                "SELECT * FROM board_invitations WHERE id = ?", (invitation_id,)
            ).fetchone()
        return Invitation(**dict(row)) if row else None

    def list_invitations(self, board_id: str, conn=None) -> List[Invitation]:
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM board_invitations WHERE board_id = ? ORDER BY created_at",
                (board_id,),
            ).fetchall()
        return [Invitation(**dict(r)) for r in rows]

    def list_invitations_for_email(self, email: str, conn=None) -> List[Invitation]:
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM board_invitations WHERE email = ? ORDER BY created_at",
                (email.lower(),),
            ).fetchall()
        return [Invitation(**dict(r)) for r in rows]

    def delete_invitation(self, invitation_id: str, conn=None) -> None:
        with self._use(conn) as c:
            c.execute("DELETE FROM board_invitations WHERE id = ?", (invitation_id,))

    # ── Notes ────────────────────────────────────────────────────

    def insert_note(self, note: Note, conn=None) -> None:
        with self._use(conn) as c:
            c.execute(
                "INSERT INTO notes (id, task_id, content, created_at) VALUES (?, ?, ?, ?)",
                (note.id, note.task_id, note.content, note.created_at),
            )

    def get_note(self, note_id: str, conn=None) -> Optional[Note]:
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return Note(**dict(row)) if row else None

    def list_notes(self, task_id: str, conn=None) -> List[Note]:
        """Notes for a task, newest first."""
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT * FROM notes WHERE task_id = ? ORDER BY created_at DESC, id DESC",
                (task_id,),
            ).fetchall()
        return [Note(**dict(r)) for r in rows]

    def delete_note(self, note_id: str, conn=None) -> None:
        with self._use(conn) as c:
            c.execute("DELETE FROM notes WHERE id = ?", (note_id,))
