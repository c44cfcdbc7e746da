"""
Board authorization.

Answers "is member" / "is owner" for a (board, caller) pair. Mutations
call ``require_member`` / ``require_owner`` before any read-modify-write.
"""
from typing import Optional

from .errors import Forbidden
from .schema import Role
from .store import TaskStore


class MembershipAuthorizer:
    """Membership-table backed authorization predicate."""

    def __init__(self, store: TaskStore):
        self.store = store

    def is_member(self, board_id: str, user_id: Optional[str], conn=None) -> bool:
        if not user_id:
            return False
        return self.store.get_membership(board_id, user_id, conn=conn) is not None

    def is_owner(self, board_id: str, user_id: Optional[str], conn=None) -> bool:
        if not user_id:
            return False
        membership = self.store.get_membership(board_id, user_id, conn=conn)
        return membership is not None and membership.role == Role.OWNER

    def require_member(self, board_id: str, user_id: Optional[str], conn=None) -> None:
        """Raises Forbidden unless the caller belongs to the board."""
        if not self.is_member(board_id, user_id, conn=conn):
            raise Forbidden(f"Not a member of board {board_id}")

    def require_owner(self, board_id: str, user_id: Optional[str], conn=None) -> None:
        if not self.is_owner(board_id, user_id, conn=conn):
            raise Forbidden(f"Only the board owner can do this on board {board_id}")
