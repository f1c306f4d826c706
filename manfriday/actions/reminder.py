from __future__ import annotations

from typing import Any

from manfriday.services.reminders_repo import RemindersRepository

from .arguments import ReminderArgs
from .base import ActionContext, ActionExecutor


class ReminderExecutor(ActionExecutor):
    """Stores a reminder for the scheduled sweep to deliver over the messaging channel.

    Writes to the record store instead of a Google API, so the access token is unused.
    """

    name = "reminder"
    description = "Set a reminder that will be sent to the user as a message at the due time."
    schema: dict[str, object] = {
        "type": "object",
        "required": ["content", "due_at"],
        "properties": {
            "content": {"type": "string", "description": "What to remind the user about."},
            "due_at": {
                "type": "string",
                "description": "ISO-8601 instant with UTC offset when the reminder is due.",
            },
        },
    }

    def __init__(self, reminders: RemindersRepository) -> None:
        self._reminders = reminders

    def parse_arguments(self, arguments: dict[str, Any]) -> ReminderArgs:
        return ReminderArgs.from_arguments(arguments)

    def perform(self, context: ActionContext, args: ReminderArgs) -> dict[str, Any]:
        record = self._reminders.insert_pending(
            user_id=context.user_id,
            content=args.content,
            due_at=args.due_at,
        )
        return {
            "id": record.id,
            "content": record.content,
            "due_at": (record.due_at or args.due_at).isoformat(),
            "status": record.status,
        }
