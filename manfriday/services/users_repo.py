from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from manfriday.errors import StorageUnavailable

from .postgrest import PostgrestClient, opt_str, parse_time


@dataclass(frozen=True)
class User:
    id: str
    channel_address: str
    name: str | None
    created_at: datetime | None


class UsersRepository:
    TABLE = "users"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    def get_by_address(self, channel_address: str) -> User | None:
        rows = self._client.select(
            self.TABLE,
            params={
                "select": "id,channel_address,name,created_at",
                "channel_address": f"eq.{channel_address}",
                "limit": "1",
            },
        )
        if not rows:
            return None
        return _to_user(rows[0])

    def create_if_absent(self, channel_address: str) -> tuple[User, bool]:
        """Insert a user for the address unless one exists.

        Returns the stored user and whether this call created it. The insert
        ignores conflicts on the unique ``channel_address`` column, so two
        concurrent first contacts leave exactly one row behind.
        """
        rows = self._client.insert(
            self.TABLE,
            body={"channel_address": channel_address},
            on_conflict="channel_address",
            resolution="ignore-duplicates",
        )
        if rows:
            return _to_user(rows[0]), True
        existing = self.get_by_address(channel_address)
        if existing is None:
            raise StorageUnavailable("User insert was ignored but no existing row was found.")
        return existing, False


def _to_user(row: dict[str, Any]) -> User:
    return User(
        id=str(row.get("id", "")),
        channel_address=str(row.get("channel_address", "")),
        name=opt_str(row.get("name")),
        created_at=parse_time(row.get("created_at")),
    )
