import base64
import json
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from email import message_from_bytes
from unittest.mock import patch

import requests

from manfriday.actions import (
    ActionCatalog,
    ActionContext,
    ActionRequest,
    GmailExecutor,
    GoogleApiClient,
    GoogleCalendarExecutor,
    GoogleTasksExecutor,
    ReminderExecutor,
)
from manfriday.errors import StorageUnavailable
from manfriday.services.reminders_repo import ReminderRecord

CONTEXT = ActionContext(access_token="token-1", user_id="user-1")
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _response(status: int, payload=None, text: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = (json.dumps(payload) if payload is not None else text).encode("utf-8")
    return response


class _FakeSession:
    def __init__(self, responses) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeReminders:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.inserted = []

    def insert_pending(self, user_id, content, due_at):
        if self.fail:
            raise StorageUnavailable("store down")
        self.inserted.append((user_id, content, due_at))
        return ReminderRecord(id="rem-1", user_id=user_id, content=content, due_at=due_at, status="pending")


def _request(name: str, **arguments) -> ActionRequest:
    return ActionRequest(name=name, arguments=arguments, call_id=f"call-{name}")


class GoogleApiClientErrorMappingTests(unittest.TestCase):
    def _run_calendar_list(self, outcome):
        session = _FakeSession([outcome])
        executor = GoogleCalendarExecutor(GoogleApiClient(session=session), clock=lambda: NOW)
        return executor.execute(CONTEXT, _request("calendar", operation="list"))

    def test_http_429_maps_to_rate_limited(self):
        result = self._run_calendar_list(_response(429, {"error": {"message": "slow down"}}))
        self.assertFalse(result.success)
        self.assertEqual(result.reason, "rate_limited")

    def test_quota_403_maps_to_rate_limited(self):
        body = {"error": {"errors": [{"reason": "rateLimitExceeded"}], "code": 403}}
        result = self._run_calendar_list(_response(403, body))
        self.assertEqual(result.reason, "rate_limited")

    def test_http_401_maps_to_auth_rejected(self):
        result = self._run_calendar_list(_response(401, {"error": "invalid_token"}))
        self.assertEqual(result.reason, "auth_rejected")

    def test_server_error_maps_to_provider_error(self):
        result = self._run_calendar_list(_response(503, text="backend unavailable"))
        self.assertEqual(result.reason, "provider_error")
        self.assertIn("503", result.detail)

    def test_timeout_maps_to_network_error(self):
        result = self._run_calendar_list(requests.Timeout("slow"))
        self.assertEqual(result.reason, "network_error")

    def test_non_json_body_maps_to_malformed_response(self):
        result = self._run_calendar_list(_response(200, text="<html>"))
        self.assertEqual(result.reason, "malformed_response")

    def test_client_without_session_uses_a_connection_per_call(self):
        client = GoogleApiClient(timeout_seconds=5)
        with patch(
            "manfriday.actions.google_api.requests.request",
            side_effect=lambda *args, **kwargs: _response(200, {"items": []}),
        ) as request:
            with ThreadPoolExecutor(max_workers=2) as pool:
                payloads = list(
                    pool.map(
                        lambda token: client.get_json(GoogleCalendarExecutor.EVENTS_URL, token),
                        ["token-a", "token-b"],
                    )
                )

        self.assertIsNone(client.session)
        self.assertEqual(payloads, [{"items": []}, {"items": []}])
        self.assertEqual(request.call_count, 2)
        tokens = sorted(call.kwargs["headers"]["Authorization"] for call in request.call_args_list)
        self.assertEqual(tokens, ["Bearer token-a", "Bearer token-b"])
        self.assertEqual(request.call_args_list[0].kwargs["timeout"], 5)


class GmailExecutorTests(unittest.TestCase):
    def test_read_normalizes_message_metadata(self):
        session = _FakeSession(
            [
                _response(200, {"messages": [{"id": "m-1", "threadId": "t-1"}]}),
                _response(
                    200,
                    {
                        "id": "m-1",
                        "threadId": "t-1",
                        "snippet": " Quarterly numbers attached ",
                        "payload": {
                            "headers": [
                                {"name": "Subject", "value": "Q1 report"},
                                {"name": "From", "value": "Jane <jane@example.com>"},
                                {"name": "Date", "value": "Mon, 2 Mar 2026 08:00:00 +0000"},
                            ]
                        },
                    },
                ),
            ]
        )
        result = GmailExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT, _request("mail", operation="read")
        )

        self.assertTrue(result.success)
        self.assertEqual(result.payload["query"], "is:unread")
        self.assertEqual(
            result.payload["messages"],
            [
                {
                    "id": "m-1",
                    "thread_id": "t-1",
                    "subject": "Q1 report",
                    "from": "Jane <jane@example.com>",
                    "date": "Mon, 2 Mar 2026 08:00:00 +0000",
                    "snippet": "Quarterly numbers attached",
                }
            ],
        )
        self.assertEqual(session.calls[0]["headers"]["Authorization"], "Bearer token-1")
        self.assertEqual(session.calls[1]["params"]["format"], "metadata")

    def test_send_encodes_raw_message(self):
        session = _FakeSession([_response(200, {"id": "sent-1", "threadId": "t-9"})])
        result = GmailExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT,
            _request(
                "mail",
                operation="send",
                recipient="bob@example.com",
                subject="Lunch",
                body="Noon works.",
            ),
        )

        self.assertTrue(result.success)
        self.assertEqual(result.payload["id"], "sent-1")
        raw = session.calls[0]["json"]["raw"]
        decoded = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
        self.assertEqual(decoded["To"], "bob@example.com")
        self.assertEqual(decoded["Subject"], "Lunch")

    def test_send_with_bad_recipient_makes_no_call(self):
        session = _FakeSession([])
        result = GmailExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT,
            _request("mail", operation="send", recipient="bob", subject="x", body="y"),
        )
        self.assertFalse(result.success)
        self.assertEqual(result.reason, "invalid_arguments")
        self.assertEqual(session.calls, [])


class GoogleCalendarExecutorTests(unittest.TestCase):
    def test_list_defaults_time_min_to_now(self):
        session = _FakeSession(
            [
                _response(
                    200,
                    {
                        "items": [
                            {
                                "id": "e-1",
                                "summary": "Standup",
                                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                                "end": {"dateTime": "2026-03-02T10:15:00Z"},
                            },
                            {"id": "e-2", "start": {"date": "2026-03-03"}, "end": {"date": "2026-03-04"}},
                        ]
                    },
                )
            ]
        )
        result = GoogleCalendarExecutor(GoogleApiClient(session=session), clock=lambda: NOW).execute(
            CONTEXT, _request("calendar", operation="list")
        )

        self.assertEqual(session.calls[0]["params"]["timeMin"], NOW.isoformat())
        events = result.payload["events"]
        self.assertEqual(events[0]["title"], "Standup")
        self.assertFalse(events[0]["all_day"])
        self.assertEqual(events[1]["title"], "Untitled event")
        self.assertTrue(events[1]["all_day"])

    def test_create_defaults_end_to_one_hour(self):
        session = _FakeSession([_response(200, {"id": "e-9", "summary": "Dentist"})])
        result = GoogleCalendarExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT,
            _request("calendar", operation="create", title="Dentist", start_time="2026-03-05T15:00:00Z"),
        )

        self.assertTrue(result.success)
        body = session.calls[0]["json"]
        self.assertEqual(body["start"]["dateTime"], "2026-03-05T15:00:00+00:00")
        self.assertEqual(body["end"]["dateTime"], "2026-03-05T16:00:00+00:00")

    def test_create_with_end_before_start_is_invalid(self):
        session = _FakeSession([])
        result = GoogleCalendarExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT,
            _request(
                "calendar",
                operation="create",
                title="Backwards",
                start_time="2026-03-05T15:00:00Z",
                end_time="2026-03-05T14:00:00Z",
            ),
        )
        self.assertEqual(result.reason, "invalid_arguments")
        self.assertEqual(session.calls, [])


class GoogleTasksExecutorTests(unittest.TestCase):
    def test_complete_patches_task_status(self):
        session = _FakeSession([_response(200, {"id": "task-1", "title": "File taxes", "status": "completed"})])
        result = GoogleTasksExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT, _request("tasks", operation="complete", task_id="task-1")
        )

        self.assertTrue(result.success)
        self.assertEqual(session.calls[0]["method"], "PATCH")
        self.assertEqual(
            session.calls[0]["url"],
            "https://tasks.googleapis.com/tasks/v1/lists/@default/tasks/task-1",
        )
        self.assertEqual(result.payload["task"]["status"], "completed")

    def test_list_returns_open_tasks(self):
        session = _FakeSession([_response(200, {"items": [{"id": "task-1", "title": "Call bank"}]})])
        result = GoogleTasksExecutor(GoogleApiClient(session=session)).execute(
            CONTEXT, _request("tasks", operation="list")
        )
        self.assertEqual(session.calls[0]["params"]["showCompleted"], "false")
        self.assertEqual(result.payload["tasks"][0]["title"], "Call bank")
        self.assertIsNone(result.payload["tasks"][0]["due"])

    def test_unknown_operation_is_invalid(self):
        result = GoogleTasksExecutor(GoogleApiClient(session=_FakeSession([]))).execute(
            CONTEXT, _request("tasks", operation="delete")
        )
        self.assertEqual(result.reason, "invalid_arguments")


class ReminderExecutorTests(unittest.TestCase):
    def test_reminder_is_stored_as_pending(self):
        reminders = _FakeReminders()
        result = ReminderExecutor(reminders).execute(
            CONTEXT,
            _request("reminder", content="Call mom", due_at="2026-03-02T17:00:00+00:00"),
        )

        self.assertTrue(result.success)
        self.assertEqual(result.payload["status"], "pending")
        self.assertEqual(
            reminders.inserted,
            [("user-1", "Call mom", datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc))],
        )

    def test_naive_due_time_is_read_as_utc(self):
        reminders = _FakeReminders()
        ReminderExecutor(reminders).execute(
            CONTEXT, _request("reminder", content="Stretch", due_at="2026-03-02T17:00:00")
        )
        self.assertEqual(reminders.inserted[0][2].tzinfo, timezone.utc)

    def test_store_failure_becomes_failed_result(self):
        result = ReminderExecutor(_FakeReminders(fail=True)).execute(
            CONTEXT, _request("reminder", content="Call mom", due_at="2026-03-02T17:00:00Z")
        )
        self.assertFalse(result.success)
        self.assertEqual(result.reason, "storage_unavailable")

    def test_missing_due_time_is_invalid(self):
        reminders = _FakeReminders()
        result = ReminderExecutor(reminders).execute(CONTEXT, _request("reminder", content="Call mom"))
        self.assertEqual(result.reason, "invalid_arguments")
        self.assertEqual(reminders.inserted, [])


class ActionCatalogTests(unittest.TestCase):
    def test_catalog_exposes_function_declarations(self):
        catalog = ActionCatalog()
        api = GoogleApiClient(session=_FakeSession([]))
        catalog.register(GmailExecutor(api))
        catalog.register(ReminderExecutor(_FakeReminders()))

        tools = catalog.as_tools()
        self.assertEqual([tool["function"]["name"] for tool in tools], ["mail", "reminder"])
        self.assertEqual(tools[1]["function"]["parameters"]["required"], ["content", "due_at"])

    def test_duplicate_registration_is_rejected(self):
        catalog = ActionCatalog()
        catalog.register(ReminderExecutor(_FakeReminders()))
        with self.assertRaises(ValueError):
            catalog.register(ReminderExecutor(_FakeReminders()))


if __name__ == "__main__":
    unittest.main()
