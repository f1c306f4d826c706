from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlencode

import requests

from .redaction import redact_sensitive_text

GOOGLE_WORKSPACE_SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)


class GoogleOAuthError(RuntimeError):
    pass


@dataclass(frozen=True)
class GoogleTokenExchange:
    access_token: str
    refresh_token: str | None
    token_type: str | None
    scope: str | None
    expires_in: int | None


class GoogleOAuthService:
    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
        session: requests.Session | None = None,
        timeout_seconds: int = 8,
        scopes: tuple[str, ...] = GOOGLE_WORKSPACE_SCOPES,
    ) -> None:
        self.client_id = (client_id or "").strip()
        self.client_secret = (client_secret or "").strip()
        self.redirect_uri = (redirect_uri or "").strip()
        # None means one connection per call via the module-level requests API.
        self.session = session
        self.timeout_seconds = max(1, timeout_seconds)
        self.scopes = scopes

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def build_authorization_url(self, state: str) -> str:
        """Consent URL carrying ``state`` back to the callback as the correlation token."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": " ".join(self.scopes),
                "access_type": "offline",
                "prompt": "consent",
                "state": state,
            }
        )
        return f"{self.AUTHORIZE_URL}?{query}"

    def refresh_access_token(self, refresh_token: str) -> GoogleTokenExchange:
        return self._token_request(
            {
                "refresh_token": refresh_token.strip(),
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
            label="refresh",
        )

    def exchange_code(self, code: str) -> GoogleTokenExchange:
        return self._token_request(
            {
                "code": code.strip(),
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
            label="token exchange",
        )

    def _token_request(self, body: dict[str, str], label: str) -> GoogleTokenExchange:
        if not self.is_configured():
            raise GoogleOAuthError(
                "Google OAuth is not configured. Set GOOGLE_CLIENT_ID, "
                "GOOGLE_CLIENT_SECRET, and APP_URL or GOOGLE_REDIRECT_URI."
            )
        try:
            response = (self.session or requests).post(
                self.TOKEN_URL,
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise GoogleOAuthError(f"Google {label} failed: {exc.__class__.__name__}") from exc
        if not response.ok:
            detail = _extract_google_error(response)
            raise GoogleOAuthError(f"Google {label} failed: {detail}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise GoogleOAuthError(f"Google {label} returned a non-JSON payload.") from exc
        if not isinstance(payload, dict):
            raise GoogleOAuthError(f"Google {label} returned unexpected payload.")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise GoogleOAuthError(f"Google {label} missing access_token.")

        expires_in_raw = payload.get("expires_in")
        expires_in: int | None = None
        if isinstance(expires_in_raw, int):
            expires_in = expires_in_raw
        elif isinstance(expires_in_raw, str) and expires_in_raw.isdigit():
            expires_in = int(expires_in_raw)

        return GoogleTokenExchange(
            access_token=access_token.strip(),
            refresh_token=_opt_str(payload.get("refresh_token")),
            token_type=_opt_str(payload.get("token_type")),
            scope=_opt_str(payload.get("scope")),
            expires_in=expires_in,
        )


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value.strip() else None


def _extract_google_error(response: requests.Response) -> str:
    text = redact_sensitive_text(response.text.strip())
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        desc = payload.get("error_description")
        if isinstance(err, str) and isinstance(desc, str):
            return f"{err}: {desc}"
        if isinstance(err, str):
            return err
    if not text:
        return f"HTTP {response.status_code}"
    if "=" in text and "&" in text:
        parsed = parse_qs(text, keep_blank_values=True)
        err = parsed.get("error", [""])[0]
        desc = parsed.get("error_description", [""])[0]
        if err and desc:
            return f"{err}: {desc}"
    return text
