from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .arguments import TasksArgs
from .base import ActionContext, ActionExecutor
from .google_api import GoogleApiClient

MAX_LISTED_TASKS = 20


class GoogleTasksExecutor(ActionExecutor):
    name = "tasks"
    description = "List open tasks, add a task, or mark a task complete in Google Tasks."
    schema: dict[str, object] = {
        "type": "object",
        "required": ["operation"],
        "properties": {
            "operation": {
                "type": "string",
                "enum": ["list", "create", "complete"],
                "description": "list open tasks, create a task, or complete one by id.",
            },
            "task_list_id": {
                "type": "string",
                "description": "Task list id. Defaults to the user's default list.",
            },
            "title": {"type": "string", "description": "Task title for create."},
            "due": {"type": "string", "description": "Optional ISO-8601 due date for create."},
            "task_id": {"type": "string", "description": "Task id for complete."},
        },
    }
    LISTS_URL = "https://tasks.googleapis.com/tasks/v1/lists"

    def __init__(self, api: GoogleApiClient) -> None:
        self._api = api

    def parse_arguments(self, arguments: dict[str, Any]) -> TasksArgs:
        return TasksArgs.from_arguments(arguments)

    def perform(self, context: ActionContext, args: TasksArgs) -> dict[str, Any]:
        tasks_url = f"{self.LISTS_URL}/{quote(args.task_list_id, safe='@')}/tasks"
        if args.operation == "create":
            body: dict[str, Any] = {"title": args.title}
            if args.due is not None:
                body["due"] = args.due.isoformat()
            created = self._api.post_json(tasks_url, context.access_token, body=body)
            return {"task": normalize_task(created)}
        if args.operation == "complete":
            updated = self._api.patch_json(
                f"{tasks_url}/{quote(args.task_id, safe='')}",
                context.access_token,
                body={"status": "completed"},
            )
            return {"task": normalize_task(updated)}
        payload = self._api.get_json(
            tasks_url,
            context.access_token,
            params={"showCompleted": "false", "maxResults": str(MAX_LISTED_TASKS)},
        )
        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raw_items = []
        return {
            "task_list_id": args.task_list_id,
            "tasks": [normalize_task(row) for row in raw_items if isinstance(row, dict)],
        }


def normalize_task(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row.get("id") or ""),
        "title": str(row.get("title") or "").strip(),
        "status": str(row.get("status") or "needsAction"),
        "due": str(row.get("due") or "") or None,
        "notes": str(row.get("notes") or "").strip(),
    }
