"""Per-task notes."""
import sqlite3
from typing import List, Optional

from .access import MembershipAuthorizer
from .errors import InvalidArgument, NotFound
from .schema import Note
from .store import TaskStore, new_id


class NoteService:
    """Add, list and delete notes. Callers must belong to the task's board."""

    def __init__(self, store: TaskStore, authorizer: Optional[MembershipAuthorizer] = None):
        self.store = store
        self.authorizer = authorizer or MembershipAuthorizer(store)

    def _task_board(self, task_id: str, conn=None) -> str:
        task = self.store.get_task(task_id, conn=conn)
        if task is None:
            raise NotFound("Task not found")
        return task.board_id

    def add_note(self, caller: str, task_id: str, content: str) -> str:
        content = (content or "").strip()
        if not content:
            raise InvalidArgument("Note content cannot be empty")
        note = Note(id=new_id("note"), task_id=task_id, content=content)
        # same write transaction as task deletion, so the task can't vanish in between
        try:
            with self.store.transaction() as conn:
                self.authorizer.require_member(self._task_board(task_id, conn), caller, conn=conn)
                self.store.insert_note(note, conn=conn)
        except sqlite3.IntegrityError as e:
            raise NotFound("Task not found") from e
        return note.id

    def list_notes(self, caller: str, task_id: str) -> List[Note]:
        """Newest first."""
        self.authorizer.require_member(self._task_board(task_id), caller)
        return self.store.list_notes(task_id)

    def delete_note(self, caller: str, note_id: str) -> str:
        note = self.store.get_note(note_id)
        if note is None:
            raise NotFound("Note not found")
        self.authorizer.require_member(self._task_board(note.task_id), caller)
        self.store.delete_note(note_id)
        return note_id
