# Task board — HTTP client
#
# Talks to board_server.py. Server error bodies are turned back into the
# same TaskboardError subclasses the core raises, so UI code handles local
# and remote engines identically.

import asyncio
import requests
from typing import Any, Dict, List, Optional

from .errors import Conflict, Forbidden, InvalidArgument, NotFound, TaskboardError
from .schema import ColumnId, Task

_ERRORS = {
    400: InvalidArgument,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
}


class TaskboardClient:
    """HTTP client for the task board API."""

    def __init__(self, base_url: str = "http://localhost:3000",
                 user_id: str = "", api_key: str = "", timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        headers = {"X-User-Id": self.user_id}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        try:
            r = self.session.request(
                method, f"{self.base_url}{path}",
                json=json, headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TaskboardError(f"{method} {path} failed: {e}") from e
        if r.ok:
            return r.json()
        try:
            message = r.json().get("error", r.text)
        except ValueError:
            message = r.text
        raise _ERRORS.get(r.status_code, TaskboardError)(message)

    def health(self) -> bool:
        """Check if the board server is reachable."""
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=2)
            return r.ok
        except requests.RequestException:
            return False

    def get_tasks(self, board_id: str) -> List[Task]:
        data = self._request("GET", f"/api/boards/{board_id}/tasks")
        return [Task.from_dict(t) for t in data["tasks"]]

    def create_task(self, board_id: str, title: str, column_id: str = "todo",
                    priority: str = "medium", **extra) -> str:
        body = {"board_id": board_id, "title": title,
                "column_id": column_id, "priority": priority, **extra}
        return self._request("POST", "/api/tasks", body)["id"]

    def update_task(self, task_id: str, **changes) -> str:
        return self._request("PUT", f"/api/tasks/{task_id}", changes)["id"]

    def delete_task(self, task_id: str) -> str:
        return self._request("DELETE", f"/api/tasks/{task_id}")["id"]

    def move_task(self, task_id: str, target_column, target_order: int) -> str:
        body = {
            "target_column": getattr(target_column, "value", target_column),
            "target_order": target_order,
        }
        return self._request("POST", f"/api/tasks/{task_id}/move", body)["id"]


class HttpMoveClient:
    """Move client for the drag controller, backed by TaskboardClient."""

    def __init__(self, client: TaskboardClient):
        self.client = client

    async def __call__(self, task_id: str, target_column: ColumnId, target_order: int) -> str:
        return await asyncio.to_thread(self.client.move_task, task_id, target_column, target_order)
