from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from manfriday.errors import InvalidArguments

DEFAULT_TASK_LIST = "@default"
DEFAULT_MAIL_QUERY = "is:unread"


@dataclass(frozen=True)
class MailArgs:
    operation: str
    query: str = DEFAULT_MAIL_QUERY
    recipient: str = ""
    subject: str = ""
    body: str = ""

    @classmethod
    def from_arguments(cls, raw: dict[str, Any]) -> "MailArgs":
        operation = _operation(raw, {"read", "send"})
        if operation == "read":
            return cls(operation=operation, query=_opt_str(raw, "query") or DEFAULT_MAIL_QUERY)
        recipient = _require_str(raw, "recipient")
        if "@" not in recipient:
            raise InvalidArguments(f"Argument 'recipient' is not an email address: {recipient!r}.")
        return cls(
            operation=operation,
            recipient=recipient,
            subject=_require_str(raw, "subject"),
            body=_require_str(raw, "body"),
        )


@dataclass(frozen=True)
class CalendarArgs:
    operation: str
    time_min: datetime | None = None
    title: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None

    @classmethod
    def from_arguments(cls, raw: dict[str, Any]) -> "CalendarArgs":
        operation = _operation(raw, {"list", "create"})
        if operation == "list":
            time_min = _opt_str(raw, "time_min")
            return cls(
                operation=operation,
                time_min=parse_instant(time_min, "time_min") if time_min else None,
            )
        start = parse_instant(_require_str(raw, "start_time"), "start_time")
        end_raw = _opt_str(raw, "end_time")
        end = parse_instant(end_raw, "end_time") if end_raw else start + timedelta(hours=1)
        if end <= start:
            raise InvalidArguments("Argument 'end_time' must be after 'start_time'.")
        return cls(
            operation=operation,
            title=_require_str(raw, "title"),
            start_time=start,
            end_time=end,
        )


@dataclass(frozen=True)
class TasksArgs:
    operation: str
    task_list_id: str = DEFAULT_TASK_LIST
    title: str = ""
    due: datetime | None = None
    task_id: str = ""

    @classmethod
    def from_arguments(cls, raw: dict[str, Any]) -> "TasksArgs":
        operation = _operation(raw, {"list", "create", "complete"})
        task_list_id = _opt_str(raw, "task_list_id") or DEFAULT_TASK_LIST
        if operation == "list":
            return cls(operation=operation, task_list_id=task_list_id)
        if operation == "complete":
            return cls(
                operation=operation,
                task_list_id=task_list_id,
                task_id=_require_str(raw, "task_id"),
            )
        due_raw = _opt_str(raw, "due")
        return cls(
            operation=operation,
            task_list_id=task_list_id,
            title=_require_str(raw, "title"),
            due=parse_instant(due_raw, "due") if due_raw else None,
        )


@dataclass(frozen=True)
class ReminderArgs:
    content: str
    due_at: datetime

    @classmethod
    def from_arguments(cls, raw: dict[str, Any]) -> "ReminderArgs":
        return cls(
            content=_require_str(raw, "content"),
            due_at=parse_instant(_require_str(raw, "due_at"), "due_at"),
        )


def parse_instant(value: str, field_name: str) -> datetime:
    """Parse an ISO-8601 instant. Naive values are read as UTC."""
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidArguments(
            f"Argument '{field_name}' must be an ISO-8601 date-time, got {value!r}."
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _operation(raw: dict[str, Any], allowed: set[str]) -> str:
    operation = _require_str(raw, "operation").lower()
    if operation not in allowed:
        raise InvalidArguments(
            f"Argument 'operation' must be one of {', '.join(sorted(allowed))}, got {operation!r}."
        )
    return operation


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = _opt_str(raw, key)
    if not value:
        raise InvalidArguments(f"Missing required argument '{key}'.")
    return value


def _opt_str(raw: dict[str, Any], key: str) -> str:
    if not isinstance(raw, dict):
        raise InvalidArguments("Action arguments must be an object.")
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidArguments(f"Argument '{key}' must be a string.")
    return value.strip()
