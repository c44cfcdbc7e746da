"""Domain errors raised by the task board core.

Each carries the HTTP status the server maps it to.
"""


class TaskboardError(Exception):
    """Base for every error the board core surfaces to callers."""
    status_code = 500


class NotFound(TaskboardError):
    """Task, board, note or invitation does not exist."""
    status_code = 404


class Forbidden(TaskboardError):
    """Caller lacks the membership or ownership the operation needs."""
    status_code = 403


class InvalidArgument(TaskboardError):
    """Malformed input, rejected before any write."""
    status_code = 400


class Conflict(TaskboardError):
    status_code = 409
