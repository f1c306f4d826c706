from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from manfriday.errors import StorageUnavailable

from .postgrest import PostgrestClient, opt_str, parse_time, to_iso


@dataclass(frozen=True)
class Credential:
    user_id: str
    provider: str
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    scopes: frozenset[str]
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CredentialUpsert:
    user_id: str
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    scopes: frozenset[str]
    provider: str = "google"


class CredentialsRepository:
    """One delegated-authorization record per (user, provider)."""

    TABLE = "oauth_tokens"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    def get(self, user_id: str, provider: str = "google") -> Credential | None:
        rows = self._client.select(
            self.TABLE,
            params={
                "select": "user_id,provider,access_token,refresh_token,expires_at,scope,updated_at",
                "user_id": f"eq.{user_id}",
                "provider": f"eq.{provider.strip().lower()}",
                "limit": "1",
            },
        )
        if not rows:
            return None
        return _to_credential(rows[0])

    def upsert(self, payload: CredentialUpsert) -> Credential:
        rows = self._client.insert(
            self.TABLE,
            body={
                "user_id": payload.user_id,
                "provider": payload.provider.strip().lower(),
                "access_token": payload.access_token,
                "refresh_token": payload.refresh_token,
                "expires_at": to_iso(payload.expires_at),
                "scope": join_scopes(payload.scopes),
                "updated_at": to_iso(datetime.now().astimezone()),
            },
            on_conflict="user_id,provider",
            resolution="merge-duplicates",
        )
        if not rows:
            raise StorageUnavailable("Credential upsert returned no rows.")
        return _to_credential(rows[0])


def split_scopes(scope_text: str | None) -> frozenset[str]:
    raw = (scope_text or "").strip()
    if not raw:
        return frozenset()
    return frozenset(token for token in raw.replace(",", " ").split(" ") if token)


def join_scopes(scopes: frozenset[str] | set[str]) -> str:
    return " ".join(sorted(scopes))


def _to_credential(row: dict[str, Any]) -> Credential:
    return Credential(
        user_id=str(row.get("user_id", "")),
        provider=str(row.get("provider", "")),
        access_token=str(row.get("access_token") or ""),
        refresh_token=opt_str(row.get("refresh_token")),
        expires_at=parse_time(row.get("expires_at")),
        scopes=split_scopes(opt_str(row.get("scope"))),
        updated_at=parse_time(row.get("updated_at")),
    )
