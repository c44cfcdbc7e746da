#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over the task board core (pkg/taskboard/).

Usage:
    python board_server.py --port 3000 --db /var/lib/taskboard/taskboard.db

Auth:
    Mutating endpoints require X-API-Key (TASKBOARD_API_SECRET).
    The caller is identified by the X-User-Id header; sign-in itself is
    handled in front of this server.

API:
    GET    /api/boards/<id>/tasks       → { tasks, columns, version }
    POST   /api/tasks                   → createTask  { id }
    PUT    /api/tasks/<id>              → updateTask  { id }
    DELETE /api/tasks/<id>              → deleteTask  { id }
    POST   /api/tasks/<id>/move         → moveTask    { id }
    ...plus boards, members, invitations and notes below.
"""

import hmac
import logging
import sys
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from pkg.taskboard.boards import BoardService
from pkg.taskboard.config import Settings
from pkg.taskboard.errors import TaskboardError
from pkg.taskboard.events import BoardEventBridge
from pkg.taskboard.notes import NoteService
from pkg.taskboard.ordering import OrderingEngine
from pkg.taskboard.projection import project
from pkg.taskboard.store import TaskStore

logger = logging.getLogger("board_server")

api = Blueprint("api", __name__)


@dataclass
class Services:
    store: TaskStore
    events: BoardEventBridge
    engine: OrderingEngine
    boards: BoardService
    notes: NoteService

    @classmethod
    def build(cls, settings: Settings) -> "Services":
        store = TaskStore(settings.db_path, timeout=settings.lock_timeout)
        events = BoardEventBridge(store)
        engine = OrderingEngine(store, events=events)
        return cls(
            store=store,
            events=events,
            engine=engine,
            boards=BoardService(store, engine, engine.authorizer),
            notes=NoteService(store, engine.authorizer),
        )


def services() -> Services:
    return current_app.extensions["taskboard"]


def caller() -> Optional[str]:
    return request.headers.get("X-User-Id", "").strip() or None


def body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


# ── Auth ─────────────────────────────────────────────────────────────────────


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config.get("API_SECRET", "")
        if not secret:
            return jsonify({"error": "API_SECRET not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


@api.errorhandler(TaskboardError)
def handle_taskboard_error(e: TaskboardError):
    return jsonify({"error": str(e)}), e.status_code


# ── Tasks ────────────────────────────────────────────────────────────────────


@api.route("/api/boards/<board_id>/tasks", methods=["GET"])
def api_board_tasks(board_id):
    """The board's task list, plus the three-column projection."""
    svc = services()
    svc.boards.get_board(caller(), board_id)
    tasks = svc.store.list_tasks(board_id)
    columns = project(tasks, board_id)
    return jsonify({
        "tasks": [t.to_dict() for t in tasks],
        "columns": {c.value: [t.to_dict() for t in bucket] for c, bucket in columns.items()},
        "version": svc.events.version(board_id),
    })


@api.route("/api/tasks", methods=["POST"])
@require_api_key
def api_create_task():
    task_id = services().engine.create_task(caller(), **body())
    return jsonify({"id": task_id}), 201


@api.route("/api/tasks/<task_id>", methods=["GET"])
def api_get_task(task_id):
    svc = services()
    task = svc.store.get_task(task_id)
    if task is None:
        return jsonify({"error": "Task not found"}), 404
    svc.engine.authorizer.require_member(task.board_id, caller())
    return jsonify({"task": task.to_dict()})


@api.route("/api/tasks/<task_id>", methods=["PUT"])
@require_api_key
def api_update_task(task_id):
    data = body()
    data.pop("task_id", None)
    return jsonify({"id": services().engine.update_task(caller(), task_id, **data)})


@api.route("/api/tasks/<task_id>", methods=["DELETE"])
@require_api_key
def api_delete_task(task_id):
    return jsonify({"id": services().engine.delete_task(caller(), task_id)})


@api.route("/api/tasks/<task_id>/move", methods=["POST"])
@require_api_key
def api_move_task(task_id):
    data = body()
    moved = services().engine.move(
        caller(), task_id, data.get("target_column"), data.get("target_order"))
    return jsonify({"id": moved})


# ── Boards ───────────────────────────────────────────────────────────────────


@api.route("/api/users", methods=["POST"])
@require_api_key
def api_register_user():
    data = body()
    user_id = services().boards.register_user(data.get("email", ""), data.get("name", ""))
    return jsonify({"id": user_id}), 201


@api.route("/api/boards", methods=["GET"])
def api_list_boards():
    boards = services().boards.list_boards(caller())
    return jsonify({"boards": [b.to_dict() for b in boards], "count": len(boards)})


@api.route("/api/boards", methods=["POST"])
@require_api_key
def api_create_board():
    data = body()
    board_id = services().boards.create_board(
        caller(), data.get("title", ""), data.get("color", "blue"), data.get("description"))
    return jsonify({"id": board_id}), 201


@api.route("/api/boards/<board_id>", methods=["GET"])
def api_get_board(board_id):
    return jsonify({"board": services().boards.get_board(caller(), board_id).to_dict()})


@api.route("/api/boards/<board_id>", methods=["PUT"])
@require_api_key
def api_update_board(board_id):
    return jsonify({"id": services().boards.update_board(caller(), board_id, **body())})


@api.route("/api/boards/<board_id>", methods=["DELETE"])
@require_api_key
def api_delete_board(board_id):
    return jsonify({"id": services().boards.delete_board(caller(), board_id)})


@api.route("/api/boards/<board_id>/seed", methods=["POST"])
@require_api_key
def api_seed_board(board_id):
    return jsonify(services().boards.seed_sample_data(caller(), board_id))


@api.route("/api/boards/<board_id>/members", methods=["GET"])
def api_list_members(board_id):
    return jsonify({"members": services().boards.list_members(caller(), board_id)})


@api.route("/api/boards/<board_id>/members", methods=["POST"])
@require_api_key
def api_add_member(board_id):
    result = services().boards.add_member(caller(), board_id, body().get("email", ""))
    return jsonify(result), 201


@api.route("/api/boards/<board_id>/members/<user_id>", methods=["DELETE"])
@require_api_key
def api_remove_member(board_id, user_id):
    return jsonify({"id": services().boards.remove_member(caller(), board_id, user_id)})


@api.route("/api/boards/<board_id>/invitations", methods=["GET"])
def api_list_invitations(board_id):
    invitations = services().boards.list_invitations(caller(), board_id)
    return jsonify({"invitations": [i.to_dict() for i in invitations]})


@api.route("/api/invitations/<invitation_id>", methods=["DELETE"])
@require_api_key
def api_cancel_invitation(invitation_id):
    return jsonify({"id": services().boards.cancel_invitation(caller(), invitation_id)})


# ── Notes ────────────────────────────────────────────────────────────────────


@api.route("/api/tasks/<task_id>/notes", methods=["GET"])
def api_list_notes(task_id):
    notes = services().notes.list_notes(caller(), task_id)
    return jsonify({"notes": [n.to_dict() for n in notes]})


@api.route("/api/tasks/<task_id>/notes", methods=["POST"])
@require_api_key
def api_add_note(task_id):
    note_id = services().notes.add_note(caller(), task_id, body().get("content", ""))
    return jsonify({"id": note_id}), 201


@api.route("/api/notes/<note_id>", methods=["DELETE"])
@require_api_key
def api_delete_note(note_id):
    return jsonify({"id": services().notes.delete_note(caller(), note_id)})


@api.route("/health")
def health():
    return jsonify({"status": "ok", "db": services().store.db_path})


# ── App ──────────────────────────────────────────────────────────────────────


def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or Settings.load()
    app = Flask(__name__)
    app.config["API_SECRET"] = settings.api_secret
    app.extensions["taskboard"] = Services.build(settings)
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--config", help="Path to taskboard.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to taskboard.db (overrides TASKBOARD_DB env var)")
    args = parser.parse_args()

    settings = Settings.load(args.config)
    if args.db:
        settings.db_path = args.db
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logger.info(f"serving http://{settings.host}:{settings.port} (db: {settings.db_path})")

    create_app(settings).run(host=settings.host, port=settings.port, debug=False, threaded=True)
