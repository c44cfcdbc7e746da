"""
Boards, membership and invitations.

Plain record management around the ordering engine:
    - create/update/delete boards (creator becomes owner)
    - add members by email; unknown emails get a pending invitation
    - invitations turn into memberships when the user registers
    - sample data for empty boards
"""
import logging
import re
from typing import Dict, List, Optional

from .access import MembershipAuthorizer
from .errors import Forbidden, InvalidArgument, NotFound
from .ordering import OrderingEngine
from .schema import Board, Invitation, Membership, Role, User
from .store import TaskStore, new_id

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

SAMPLE_TASKS = [
    {"title": "Buy groceries", "column_id": "done", "priority": "low"},
    {"title": "Go for a swim", "column_id": "doing", "priority": "medium"},
    {"title": "Plan the sprint", "column_id": "todo", "priority": "high"},
]


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.fullmatch(email):
        raise InvalidArgument(f"Invalid email address: '{email}'")
    return email


class BoardService:
    """Board and membership operations. Task ordering goes through ``engine``."""

    def __init__(self, store: TaskStore, engine: Optional[OrderingEngine] = None,
                 authorizer: Optional[MembershipAuthorizer] = None):
        self.store = store
        self.authorizer = authorizer or MembershipAuthorizer(store)
        self.engine = engine or OrderingEngine(store, self.authorizer)

    # ── Users ──

    def register_user(self, email: str, name: str = "") -> str:
        """Create a user and accept every pending invitation for the email."""
        email = normalize_email(email)
        with self.store.transaction() as conn:
            if self.store.get_user_by_email(email, conn=conn):
                raise InvalidArgument(f"User {email} already exists")
            user = User(id=new_id("user"), email=email, name=name.strip())
            self.store.insert_user(user, conn=conn)
            invitations = self.store.list_invitations_for_email(email, conn=conn)
            for invitation in invitations:
                if not self.store.get_membership(invitation.board_id, user.id, conn=conn):
                    self.store.add_membership(
                        Membership(invitation.board_id, user.id, Role.MEMBER), conn=conn)
                self.store.delete_invitation(invitation.id, conn=conn)
        if invitations:
            logger.info(f"{email} joined {len(invitations)} board(s) from invitations")
        return user.id

    # ── Boards ──

    def create_board(self, caller: str, title: str, color: str = "blue",
                     description: Optional[str] = None) -> str:
        title = (title or "").strip()
        if not title:
            raise InvalidArgument("title is required")
        if not caller or self.store.get_user(caller) is None:
            raise Forbidden("Sign in to create boards")
        board = Board(id=new_id("board"), title=title, color=color or "blue",
                      description=description, owner_id=caller)
        with self.store.transaction() as conn:
            self.store.insert_board(board, conn=conn)
            self.store.add_membership(Membership(board.id, caller, Role.OWNER), conn=conn)
        logger.info(f"board {board.id} created by {caller}")
        return board.id

    def get_board(self, caller: str, board_id: str) -> Board:
        board = self._require_board(board_id)
        self.authorizer.require_member(board_id, caller)
        return board

    def list_boards(self, caller: str) -> List[Board]:
        return self.store.list_boards_for_user(caller)

    def update_board(self, caller: str, board_id: str, **fields) -> str:
        self._require_board(board_id)
        self.authorizer.require_member(board_id, caller)
        if "title" in fields and not (fields["title"] or "").strip():
            raise InvalidArgument("title cannot be empty")
        unknown = set(fields) - {"title", "description", "color"}
        if unknown:
            raise InvalidArgument(f"Unknown parameters: {', '.join(sorted(unknown))}")
        self.store.update_board_fields(board_id, fields)
        return board_id

    def delete_board(self, caller: str, board_id: str) -> str:
        """Owner only. Removes tasks, notes, members and invitations too."""
        self._require_board(board_id)
        with self.engine.board_lock(board_id):
            with self.store.transaction() as conn:
                self.authorizer.require_owner(board_id, caller, conn=conn)
                self.store.delete_board(board_id, conn=conn)
        logger.info(f"board {board_id} deleted by {caller}")
        if self.engine.events is not None:
            self.engine.events.publish(board_id, "board_deleted")
        return board_id

    def seed_sample_data(self, caller: str, board_id: str) -> Dict[str, object]:
        """Fill an empty board with a few example tasks."""
        self._require_board(board_id)
        self.authorizer.require_member(board_id, caller)
        if self.store.count_board_tasks(board_id) > 0:
            return {"message": "Tasks already exist. Skipping seed.", "task_ids": []}
        task_ids = [
            self.engine.create_task(caller, board_id=board_id, **sample)
            for sample in SAMPLE_TASKS
        ]
        return {"message": f"Seeded {len(task_ids)} tasks", "task_ids": task_ids}

    # ── Members ──

    def list_members(self, caller: str, board_id: str) -> List[Dict[str, object]]:
        self._require_board(board_id)
        self.authorizer.require_member(board_id, caller)
        members = []
        for membership in self.store.list_memberships(board_id):
            user = self.store.get_user(membership.user_id)
            entry = membership.to_dict()
            entry["email"] = user.email if user else None
            entry["name"] = user.name if user else None
            members.append(entry)
        return members

    def add_member(self, caller: str, board_id: str, email: str) -> Dict[str, str]:
        """
        Add a member by email (owner only).

        Returns ``{"status": "added", "user_id": ...}`` for existing users or
        ``{"status": "invited", "invitation_id": ...}`` otherwise.
        """
        email = normalize_email(email)
        self._require_board(board_id)
        with self.store.transaction() as conn:
            self.authorizer.require_owner(board_id, caller, conn=conn)
            user = self.store.get_user_by_email(email, conn=conn)
            if user is not None:
                if self.store.get_membership(board_id, user.id, conn=conn):
                    raise InvalidArgument(f"{email} is already a member")
                self.store.add_membership(Membership(board_id, user.id, Role.MEMBER), conn=conn)
                result = {"status": "added", "user_id": user.id}
            else:
                pending = self.store.list_invitations(board_id, conn=conn)
                if any(inv.email == email for inv in pending):
                    raise InvalidArgument(f"{email} already has a pending invitation")
                invitation = Invitation(id=new_id("invite"), board_id=board_id,
                                        email=email, invited_by=caller)
                self.store.insert_invitation(invitation, conn=conn)
                result = {"status": "invited", "invitation_id": invitation.id}
        logger.info(f"board {board_id}: {email} {result['status']}")
        return result

    def remove_member(self, caller: str, board_id: str, user_id: str) -> str:
        self._require_board(board_id)
        with self.store.transaction() as conn:
            self.authorizer.require_owner(board_id, caller, conn=conn)
            membership = self.store.get_membership(board_id, user_id, conn=conn)
            if membership is None:
                raise NotFound(f"User {user_id} is not a member of board {board_id}")
            if membership.role == Role.OWNER:
                raise InvalidArgument("The board owner cannot be removed")
            self.store.remove_membership(board_id, user_id, conn=conn)
        return user_id

    # ── Invitations ──

    def list_invitations(self, caller: str, board_id: str) -> List[Invitation]:
        self._require_board(board_id)
        self.authorizer.require_member(board_id, caller)
        return self.store.list_invitations(board_id)

    def cancel_invitation(self, caller: str, invitation_id: str) -> str:
        invitation = self.store.get_invitation(invitation_id)
        if invitation is None:
            raise NotFound(f"Invitation {invitation_id} not found")
        self.authorizer.require_owner(invitation.board_id, caller)
        self.store.delete_invitation(invitation_id)
        return invitation_id

    def _require_board(self, board_id: str) -> Board:
        board = self.store.get_board(board_id)
        if board is None:
            raise NotFound(f"Board {board_id} not found")
        return board
