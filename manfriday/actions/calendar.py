from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from .arguments import CalendarArgs
from .base import ActionContext, ActionExecutor
from .google_api import GoogleApiClient

MAX_LISTED_EVENTS = 10


class GoogleCalendarExecutor(ActionExecutor):
    name = "calendar"
    description = "List upcoming events or create an event in the user's primary Google Calendar."
    schema: dict[str, object] = {
        "type": "object",
        "required": ["operation"],
        "properties": {
            "operation": {
                "type": "string",
                "enum": ["list", "create"],
                "description": "list shows upcoming events, create adds one.",
            },
            "time_min": {
                "type": "string",
                "description": "ISO-8601 lower bound for list. Defaults to now.",
            },
            "title": {"type": "string", "description": "Event title for create."},
            "start_time": {
                "type": "string",
                "description": "ISO-8601 start with UTC offset for create.",
            },
            "end_time": {
                "type": "string",
                "description": "ISO-8601 end with UTC offset. Defaults to one hour after start.",
            },
        },
    }
    EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

    def __init__(
        self,
        api: GoogleApiClient,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._api = api
        self._clock = clock

    def parse_arguments(self, arguments: dict[str, Any]) -> CalendarArgs:
        return CalendarArgs.from_arguments(arguments)

    def perform(self, context: ActionContext, args: CalendarArgs) -> dict[str, Any]:
        if args.operation == "create":
            return self._create(context.access_token, args)
        return self._list(context.access_token, args.time_min or self._clock())

    def _list(self, access_token: str, time_min: datetime) -> dict[str, Any]:
        payload = self._api.get_json(
            self.EVENTS_URL,
            access_token,
            params={
                "timeMin": time_min.isoformat(),
                "maxResults": str(MAX_LISTED_EVENTS),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raw_items = []
        events = [normalize_event(row) for row in raw_items if isinstance(row, dict)]
        return {"time_min": time_min.isoformat(), "events": events}

    def _create(self, access_token: str, args: CalendarArgs) -> dict[str, Any]:
        payload = self._api.post_json(
            self.EVENTS_URL,
            access_token,
            body={
                "summary": args.title,
                "start": {"dateTime": args.start_time.isoformat()},
                "end": {"dateTime": args.end_time.isoformat()},
            },
        )
        return {"event": normalize_event(payload)}


def normalize_event(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row.get("id") or ""),
        "title": str(row.get("summary") or "Untitled event").strip(),
        "start": _event_time(row.get("start")),
        "end": _event_time(row.get("end")),
        "all_day": _is_all_day(row.get("start")),
        "location": str(row.get("location") or "").strip(),
        "link": str(row.get("htmlLink") or "").strip(),
    }


def _event_time(value: object) -> str:
    if not isinstance(value, dict):
        return ""
    date_time = value.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        return date_time.strip()
    date_only = value.get("date")
    if isinstance(date_only, str) and date_only.strip():
        return date_only.strip()
    return ""


def _is_all_day(value: object) -> bool:
    return isinstance(value, dict) and not value.get("dateTime") and bool(value.get("date"))
