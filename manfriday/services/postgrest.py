from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import requests

from manfriday.errors import StorageUnavailable

from .redaction import redact_sensitive_text


class PostgrestClient:
    """Thin Supabase PostgREST wrapper shared by the table repositories.

    Every failure, transport or HTTP, surfaces as ``StorageUnavailable``.
    """

    def __init__(
        self,
        supabase_url: str | None,
        service_role_key: str | None,
        session: requests.Session | None = None,
        timeout_seconds: int = 8,
    ) -> None:
        self.supabase_url = (supabase_url or "").rstrip("/")
        self.service_role_key = (service_role_key or "").strip()
        # None means one connection per call via the module-level requests API.
        self.session = session
        self.timeout_seconds = max(1, int(timeout_seconds))

    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.service_role_key)

    def select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = self._request("GET", table, params=params, action=f"read {table}")
        return self._rows(response, table)

    def insert(
        self,
        table: str,
        body: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str | None = None,
        resolution: str | None = None,
    ) -> list[dict[str, Any]]:
        prefer = "return=representation"
        if resolution:
            prefer = f"resolution={resolution},{prefer}"
        params = {"on_conflict": on_conflict} if on_conflict else None
        response = self._request(
            "POST",
            table,
            params=params,
            json=body,
            prefer=prefer,
            action=f"write {table}",
        )
        return self._rows(response, table)

    def _request(
        self,
        method: str,
        table: str,
        *,
        action: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | list[dict[str, Any]] | None = None,
        prefer: str | None = None,
    ) -> requests.Response:
        self._ensure_configured()
        try:
            response = (self.session or requests).request(
                method,
                f"{self.supabase_url}/rest/v1/{table}",
                headers=self._headers(prefer=prefer),
                params=params,
                json=json,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise StorageUnavailable(f"Failed to {action}: {exc.__class__.__name__}") from exc
        if not response.ok:
            detail = redact_sensitive_text(response.text.strip())
            raise StorageUnavailable(
                f"Failed to {action}: HTTP {response.status_code} {detail or 'request failed'}"
            )
        return response

    @staticmethod
    def _rows(response: requests.Response, table: str) -> list[dict[str, Any]]:
        if not response.content:
            return []
        try:
            payload = response.json()
        except ValueError as exc:
            raise StorageUnavailable(f"Unexpected {table} response payload.") from exc
        if not isinstance(payload, list):
            raise StorageUnavailable(f"Unexpected {table} response payload.")
        return [row for row in payload if isinstance(row, dict)]

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _ensure_configured(self) -> None:
        if self.is_configured():
            return
        raise StorageUnavailable(
            "Record store is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
        )


def opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value != "" else None


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
