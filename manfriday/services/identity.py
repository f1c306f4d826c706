from __future__ import annotations

from dataclasses import dataclass

from manfriday.logging_setup import get_logger

from .users_repo import User, UsersRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedIdentity:
    user: User
    created: bool


class IdentityResolver:
    def __init__(self, users: UsersRepository) -> None:
        self._users = users

    def resolve(self, channel_address: str) -> ResolvedIdentity:
        address = (channel_address or "").strip()
        if not address:
            raise ValueError("Channel address is required.")
        existing = self._users.get_by_address(address)
        if existing is not None:
            return ResolvedIdentity(user=existing, created=False)
        user, created = self._users.create_if_absent(address)
        if created:
            logger.info("user_created", user_id=user.id)
        return ResolvedIdentity(user=user, created=created)
