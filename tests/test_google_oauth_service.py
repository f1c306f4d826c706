import json
import unittest
from urllib.parse import parse_qs, urlparse

import requests

from manfriday.services.google_oauth import (
    GOOGLE_WORKSPACE_SCOPES,
    GoogleOAuthError,
    GoogleOAuthService,
)


def _response(status: int, payload=None, text: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = (json.dumps(payload) if payload is not None else text).encode("utf-8")
    return response


class _FakeSession:
    def __init__(self, outcome) -> None:
        self._outcome = outcome
        self.posts: list[dict[str, object]] = []

    def post(self, url, **kwargs):
        self.posts.append({"url": url, **kwargs})
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


def _service(session=None, **overrides) -> GoogleOAuthService:
    params = {
        "client_id": "cid",
        "client_secret": "secret",
        "redirect_uri": "https://app.example.com/api/auth/callback",
    }
    params.update(overrides)
    return GoogleOAuthService(session=session, **params)


class GoogleOAuthServiceTests(unittest.TestCase):
    def test_authorization_url_requests_offline_consent_with_state(self):
        url = _service(_FakeSession(None)).build_authorization_url(state="user-42")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        self.assertEqual(f"{parsed.scheme}://{parsed.netloc}{parsed.path}", GoogleOAuthService.AUTHORIZE_URL)
        self.assertEqual(query["state"], ["user-42"])
        self.assertEqual(query["access_type"], ["offline"])
        self.assertEqual(query["prompt"], ["consent"])
        self.assertEqual(query["response_type"], ["code"])
        self.assertEqual(query["redirect_uri"], ["https://app.example.com/api/auth/callback"])
        self.assertEqual(query["scope"][0].split(" "), list(GOOGLE_WORKSPACE_SCOPES))

    def test_refresh_parses_token_response(self):
        session = _FakeSession(
            _response(200, {"access_token": "fresh", "expires_in": "3599", "scope": "a b", "token_type": "Bearer"})
        )
        exchange = _service(session).refresh_access_token(" refresh-1 ")

        self.assertEqual(exchange.access_token, "fresh")
        self.assertEqual(exchange.expires_in, 3599)
        self.assertIsNone(exchange.refresh_token)
        self.assertEqual(session.posts[0]["url"], GoogleOAuthService.TOKEN_URL)
        self.assertEqual(session.posts[0]["data"]["grant_type"], "refresh_token")
        self.assertEqual(session.posts[0]["data"]["refresh_token"], "refresh-1")

    def test_refresh_rejection_raises_with_google_error(self):
        session = _FakeSession(
            _response(400, {"error": "invalid_grant", "error_description": "Token has been revoked."})
        )
        with self.assertRaises(GoogleOAuthError) as ctx:
            _service(session).refresh_access_token("refresh-1")
        self.assertIn("invalid_grant", str(ctx.exception))

    def test_refresh_network_failure_raises(self):
        with self.assertRaises(GoogleOAuthError):
            _service(_FakeSession(requests.Timeout("slow"))).refresh_access_token("refresh-1")

    def test_response_without_access_token_is_malformed(self):
        with self.assertRaises(GoogleOAuthError):
            _service(_FakeSession(_response(200, {"expires_in": 3600}))).refresh_access_token("r")

    def test_exchange_code_sends_redirect_uri(self):
        session = _FakeSession(_response(200, {"access_token": "granted", "refresh_token": "r-1", "expires_in": 3600}))
        exchange = _service(session).exchange_code("code-1")
        self.assertEqual(exchange.refresh_token, "r-1")
        self.assertEqual(session.posts[0]["data"]["grant_type"], "authorization_code")
        self.assertEqual(session.posts[0]["data"]["redirect_uri"], "https://app.example.com/api/auth/callback")

    def test_unconfigured_service_refuses_token_calls(self):
        session = _FakeSession(_response(200, {"access_token": "x"}))
        with self.assertRaises(GoogleOAuthError):
            _service(session, client_secret=None).refresh_access_token("r")
        self.assertEqual(session.posts, [])


if __name__ == "__main__":
    unittest.main()
