import json
import threading
import unittest
from datetime import datetime, timezone

import requests

from manfriday.errors import StorageUnavailable
from manfriday.services.conversation import ConversationTurn
from manfriday.services.conversation_log_repo import ConversationLogRepository
from manfriday.services.credentials_repo import CredentialsRepository, CredentialUpsert
from manfriday.services.identity import IdentityResolver
from manfriday.services.postgrest import PostgrestClient
from manfriday.services.reminders_repo import RemindersRepository
from manfriday.services.users_repo import User, UsersRepository


def _response(status: int, payload=None, text: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = text.encode("utf-8")
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


def _client(session: _FakeSession) -> PostgrestClient:
    return PostgrestClient(
        supabase_url="https://db.example.supabase.co/",
        service_role_key="service-key",
        session=session,
    )


class PostgrestClientTests(unittest.TestCase):
    def test_unconfigured_client_raises_storage_unavailable(self):
        client = PostgrestClient(supabase_url=None, service_role_key=None, session=_FakeSession([]))
        with self.assertRaises(StorageUnavailable):
            client.select("users", params={})

    def test_transport_error_raises_storage_unavailable(self):
        session = _FakeSession([requests.ConnectionError("boom")])
        with self.assertRaises(StorageUnavailable):
            _client(session).select("users", params={})

    def test_http_error_detail_is_redacted(self):
        session = _FakeSession([_response(500, text="failed Bearer abc.def.ghi")])
        with self.assertRaises(StorageUnavailable) as ctx:
            _client(session).select("users", params={})
        self.assertNotIn("abc.def.ghi", str(ctx.exception))
        self.assertIn("HTTP 500", str(ctx.exception))

    def test_non_list_payload_is_rejected(self):
        session = _FakeSession([_response(200, {"id": "1"})])
        with self.assertRaises(StorageUnavailable):
            _client(session).select("users", params={})

    def test_insert_sends_resolution_preference(self):
        session = _FakeSession([_response(201, [{"id": "1"}])])
        _client(session).insert("users", {"a": 1}, on_conflict="a", resolution="ignore-duplicates")
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(call["url"], "https://db.example.supabase.co/rest/v1/users")
        self.assertEqual(call["params"], {"on_conflict": "a"})
        self.assertEqual(
            call["headers"]["Prefer"],
            "resolution=ignore-duplicates,return=representation",
        )
        self.assertEqual(call["headers"]["Authorization"], "Bearer service-key")


class UsersRepositoryTests(unittest.TestCase):
    def test_create_if_absent_reports_creation(self):
        row = {"id": "u-1", "channel_address": "whatsapp:+15550001", "created_at": "2026-03-02T09:00:00Z"}
        session = _FakeSession([_response(201, [row])])
        user, created = UsersRepository(_client(session)).create_if_absent("whatsapp:+15550001")
        self.assertTrue(created)
        self.assertEqual(user.id, "u-1")
        self.assertEqual(user.created_at, datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))

    def test_create_if_absent_rereads_when_insert_lost_race(self):
        row = {"id": "u-1", "channel_address": "whatsapp:+15550001"}
        session = _FakeSession([_response(201, []), _response(200, [row])])
        user, created = UsersRepository(_client(session)).create_if_absent("whatsapp:+15550001")
        self.assertFalse(created)
        self.assertEqual(user.id, "u-1")
        self.assertEqual(session.calls[1]["params"]["channel_address"], "eq.whatsapp:+15550001")

    def test_create_if_absent_without_row_after_ignore_is_storage_fault(self):
        session = _FakeSession([_response(201, []), _response(200, [])])
        with self.assertRaises(StorageUnavailable):
            UsersRepository(_client(session)).create_if_absent("whatsapp:+15550001")


class _InMemoryUsers:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.rows: dict[str, User] = {}
        self._barrier = threading.Barrier(2)

    def get_by_address(self, address):
        # Both first contacts miss the lookup before either inserts.
        found = self.rows.get(address)
        self._barrier.wait(timeout=5)
        return found

    def create_if_absent(self, address):
        with self._lock:
            if address in self.rows:
                return self.rows[address], False
            user = User(id=f"u-{len(self.rows) + 1}", channel_address=address, name=None, created_at=None)
            self.rows[address] = user
            return user, True


class IdentityResolverTests(unittest.TestCase):
    def test_concurrent_first_contacts_yield_one_user(self):
        users = _InMemoryUsers()
        resolver = IdentityResolver(users)
        outcomes = []

        def _resolve():
            outcomes.append(resolver.resolve("whatsapp:+15550001"))

        threads = [threading.Thread(target=_resolve) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(users.rows), 1)
        self.assertEqual({outcome.user.id for outcome in outcomes}, {"u-1"})
        self.assertEqual(sorted(outcome.created for outcome in outcomes), [False, True])

    def test_blank_address_is_rejected(self):
        with self.assertRaises(ValueError):
            IdentityResolver(_InMemoryUsers()).resolve("   ")


class CredentialsRepositoryTests(unittest.TestCase):
    def test_upsert_merges_on_user_and_provider(self):
        row = {
            "user_id": "u-1",
            "provider": "google",
            "access_token": "a",
            "refresh_token": "r",
            "expires_at": "2026-03-02T10:00:00+00:00",
            "scope": "scope-b scope-a",
        }
        session = _FakeSession([_response(201, [row])])
        credential = CredentialsRepository(_client(session)).upsert(
            CredentialUpsert(
                user_id="u-1",
                access_token="a",
                refresh_token="r",
                expires_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),
                scopes=frozenset({"scope-b", "scope-a"}),
            )
        )
        call = session.calls[0]
        self.assertEqual(call["params"], {"on_conflict": "user_id,provider"})
        self.assertIn("resolution=merge-duplicates", call["headers"]["Prefer"])
        self.assertEqual(call["json"]["scope"], "scope-a scope-b")
        self.assertEqual(call["json"]["expires_at"], "2026-03-02T10:00:00+00:00")
        self.assertEqual(credential.scopes, frozenset({"scope-a", "scope-b"}))

    def test_get_returns_none_when_absent(self):
        session = _FakeSession([_response(200, [])])
        self.assertIsNone(CredentialsRepository(_client(session)).get("u-1"))


class RemindersRepositoryTests(unittest.TestCase):
    def test_insert_pending_writes_pending_status(self):
        row = {
            "id": "r-1",
            "user_id": "u-1",
            "content": "call mom",
            "due_at": "2026-03-03T17:00:00+00:00",
            "status": "pending",
        }
        session = _FakeSession([_response(201, [row])])
        record = RemindersRepository(_client(session)).insert_pending(
            "u-1", "call mom", datetime(2026, 3, 3, 17, 0, tzinfo=timezone.utc)
        )
        self.assertEqual(session.calls[0]["json"]["status"], "pending")
        self.assertEqual(record.id, "r-1")
        self.assertEqual(record.due_at, datetime(2026, 3, 3, 17, 0, tzinfo=timezone.utc))


class ConversationLogRepositoryTests(unittest.TestCase):
    def test_recent_history_is_oldest_first(self):
        rows = [
            {"role": "assistant", "content": "second"},
            {"role": "user", "content": "first"},
            {"role": "system", "content": "ignored"},
        ]
        session = _FakeSession([_response(200, rows)])
        history = ConversationLogRepository(_client(session)).recent_history("u-1", limit=3)
        self.assertEqual([turn.content for turn in history], ["first", "second"])
        self.assertEqual(session.calls[0]["params"]["limit"], "3")

    def test_append_writes_turns_in_one_request(self):
        session = _FakeSession([_response(201, [])])
        ConversationLogRepository(_client(session)).append(
            "u-1",
            [
                ConversationTurn(role="user", content="hi"),
                ConversationTurn(role="assistant", content="hello"),
            ],
        )
        self.assertEqual(len(session.calls), 1)
        self.assertEqual([row["role"] for row in session.calls[0]["json"]], ["user", "assistant"])


if __name__ == "__main__":
    unittest.main()
