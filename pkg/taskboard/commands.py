"""
Typed commands for the board mutations.

Raw request params (JSON bodies, keyword calls) are validated against a
per-command schema and coerced into a frozen command object before the
ordering engine touches storage.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import InvalidArgument
from .schema import ColumnId, Priority

DATE_PATTERN = r"\d{4}-\d{2}-\d{2}([T ][0-9:.+\-Z]*)?"


class ParamValidator:
    """
    Validates and coerces command parameters against a schema.

    Supports:
        - required / optional with defaults
        - type coercion (string, integer)
        - allowed-value lists
        - regex pattern matching
        - min/max bounds for integers
        - rejection of unknown parameters
    """

    def validate(self, params: dict, schema: dict, partial: bool = False) -> dict:
        """
        Validate and coerce params against schema.

        With ``partial`` only keys present in ``params`` are returned and
        ``required`` is not enforced (patch-style updates). A present
        ``None`` is kept as-is for nullable fields.

        Raises:
            InvalidArgument with a user-friendly message on failure.
        """
        result = {}

        for param_name, param_schema in schema.items():
            if partial and param_name not in params:
                continue
            value = params.get(param_name)
            param_type = param_schema.get("type", "string")
            required = param_schema.get("required", False)
            default = param_schema.get("default")

            # ── Missing value handling ──
            if value is None or (isinstance(value, str) and not value.strip()):
                if required:
                    raise InvalidArgument(f"Missing required parameter: {param_name}")
                if partial:
                    if param_schema.get("nullable"):
                        result[param_name] = None
                elif default is not None:
                    result[param_name] = default
                continue

            # ── Type: string ──
            if param_type == "string":
                value = str(value).strip()

                allowed = param_schema.get("allowed")
                if allowed and value.lower() not in allowed:
                    raise InvalidArgument(
                        f"Invalid value for {param_name}: '{value}'. "
                        f"Allowed: {', '.join(str(a) for a in allowed)}"
                    )

                pattern = param_schema.get("pattern")
                if pattern and not re.fullmatch(pattern, value):
                    raise InvalidArgument(
                        f"Invalid format for {param_name}: '{value}' "
                        f"does not match pattern {pattern}"
                    )

                max_len = param_schema.get("max_length")
                if max_len is not None and len(value) > max_len:
                    raise InvalidArgument(
                        f"Parameter {param_name} must be at most {max_len} characters"
                    )

            # ── Type: integer ──
            elif param_type == "integer":
                if isinstance(value, bool):
                    raise InvalidArgument(f"Parameter {param_name} must be an integer")
                try:
                    value = int(value)
                except (ValueError, TypeError):
                    raise InvalidArgument(
                        f"Parameter {param_name} must be an integer, got: '{value}'"
                    )

                min_val = param_schema.get("min")
                max_val = param_schema.get("max")
                if min_val is not None and value < min_val:
                    raise InvalidArgument(
                        f"Parameter {param_name} must be >= {min_val}, got: {value}"
                    )
                if max_val is not None and value > max_val:
                    raise InvalidArgument(
                        f"Parameter {param_name} must be <= {max_val}, got: {value}"
                    )

            else:
                raise InvalidArgument(f"Unknown parameter type in schema: {param_type}")

            result[param_name] = value

        # ── Reject unknown parameters ──
        unknown = set(params.keys()) - set(schema.keys())
        if unknown:
            raise InvalidArgument(f"Unknown parameters: {', '.join(sorted(unknown))}")

        return result


_validator = ParamValidator()

TASK_FIELDS = {
    "title": {"type": "string", "required": True, "max_length": 500},
    "description": {"type": "string", "nullable": True},
    "priority": {"type": "string", "allowed": [p.value for p in Priority],
                 "default": Priority.MEDIUM.value},
    "due_date": {"type": "string", "pattern": DATE_PATTERN, "nullable": True},
}


@dataclass(frozen=True)
class MoveTaskCommand:
    task_id: str
    target_column: ColumnId
    target_order: int

    SCHEMA = {
        "task_id": {"type": "string", "required": True},
        "target_column": {"type": "string", "required": True,
                          "allowed": list(ColumnId.ids())},
        "target_order": {"type": "integer", "required": True},
    }

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "MoveTaskCommand":
        p = _validator.validate(params, cls.SCHEMA)
        return cls(p["task_id"], ColumnId.from_str(p["target_column"]), p["target_order"])


@dataclass(frozen=True)
class CreateTaskCommand:
    board_id: str
    title: str
    column_id: ColumnId = ColumnId.TODO
    priority: Priority = Priority.MEDIUM
    description: Optional[str] = None
    due_date: Optional[str] = None

    SCHEMA = {
        "board_id": {"type": "string", "required": True},
        "column_id": {"type": "string", "allowed": list(ColumnId.ids()),
                      "default": ColumnId.TODO.value},
        **TASK_FIELDS,
    }

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "CreateTaskCommand":
        p = _validator.validate(params, cls.SCHEMA)
        return cls(
            board_id=p["board_id"],
            title=p["title"],
            column_id=ColumnId.from_str(p["column_id"]),
            priority=Priority.from_str(p["priority"]),
            description=p.get("description"),
            due_date=p.get("due_date"),
        )


@dataclass(frozen=True)
class UpdateTaskCommand:
    """Content edit. ``changes`` holds only the fields being set."""
    task_id: str
    changes: Dict[str, Any] = field(default_factory=dict)

    SCHEMA = {"task_id": {"type": "string", "required": True}, **TASK_FIELDS}

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "UpdateTaskCommand":
        if not params.get("task_id"):
            raise InvalidArgument("Missing required parameter: task_id")
        p = _validator.validate(params, cls.SCHEMA, partial=True)
        task_id = p.pop("task_id")
        if "priority" in p:
            p["priority"] = Priority.from_str(p["priority"]).value
        return cls(task_id, p)


@dataclass(frozen=True)
class DeleteTaskCommand:
    task_id: str

    SCHEMA = {"task_id": {"type": "string", "required": True}}

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "DeleteTaskCommand":
        return cls(_validator.validate(params, cls.SCHEMA)["task_id"])
