from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from manfriday.errors import StorageUnavailable

from .postgrest import PostgrestClient, parse_time, to_iso


@dataclass(frozen=True)
class ReminderRecord:
    id: str
    user_id: str
    content: str
    due_at: datetime | None
    status: str


class RemindersRepository:
    TABLE = "reminders"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    def insert_pending(self, user_id: str, content: str, due_at: datetime) -> ReminderRecord:
        rows = self._client.insert(
            self.TABLE,
            body={
                "user_id": user_id,
                "content": content,
                "due_at": to_iso(due_at),
                "status": "pending",
            },
        )
        if not rows:
            raise StorageUnavailable("Reminder insert returned no rows.")
        return _to_reminder(rows[0])


def _to_reminder(row: dict[str, Any]) -> ReminderRecord:
    return ReminderRecord(
        id=str(row.get("id", "")),
        user_id=str(row.get("user_id", "")),
        content=str(row.get("content") or ""),
        due_at=parse_time(row.get("due_at")),
        status=str(row.get("status") or "pending"),
    )
