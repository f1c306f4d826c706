from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from manfriday.errors import StorageUnavailable
from manfriday.logging_setup import get_logger

from .credentials_repo import CredentialsRepository, CredentialUpsert, split_scopes
from .google_oauth import GoogleOAuthError, GoogleOAuthService

REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

logger = get_logger(__name__)


@dataclass(frozen=True)
class UsableToken:
    access_token: str
    expires_at: datetime | None
    refreshed: bool = False


@dataclass(frozen=True)
class AuthorizationRequired:
    user_id: str
    reason: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CredentialLifecycleManager:
    """Hands out access tokens that stay valid for at least the refresh buffer.

    Refresh failures are an expected outcome and come back as
    ``AuthorizationRequired``. Only a failed credential *read* raises
    (``StorageUnavailable``).
    """

    def __init__(
        self,
        repo: CredentialsRepository,
        oauth: GoogleOAuthService,
        provider: str = "google",
        refresh_buffer: timedelta = REFRESH_BUFFER,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repo = repo
        self._oauth = oauth
        self._provider = provider
        self._refresh_buffer = refresh_buffer
        self._clock = clock

    def obtain_usable_token(self, user_id: str) -> UsableToken | AuthorizationRequired:
        credential = self._repo.get(user_id=user_id, provider=self._provider)
        if credential is None or not credential.access_token:
            return AuthorizationRequired(user_id=user_id, reason="missing")

        now = self._clock()
        if credential.expires_at is not None and now < credential.expires_at - self._refresh_buffer:
            return UsableToken(access_token=credential.access_token, expires_at=credential.expires_at)

        if not credential.refresh_token:
            logger.info("credential_expired_without_refresh_token", user_id=user_id)
            return AuthorizationRequired(user_id=user_id, reason="no_refresh_token")

        logger.info("credential_refresh_started", user_id=user_id)
        try:
            refreshed = self._oauth.refresh_access_token(credential.refresh_token)
        except GoogleOAuthError as exc:
            logger.warning("credential_refresh_failed", user_id=user_id, error=str(exc))
            return AuthorizationRequired(user_id=user_id, reason="refresh_failed")

        lifetime = refreshed.expires_in
        if not isinstance(lifetime, int) or lifetime <= 0:
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS
        expires_at = now + timedelta(seconds=lifetime)
        if credential.expires_at is not None and expires_at <= credential.expires_at:
            logger.warning(
                "credential_refresh_not_advanced",
                user_id=user_id,
                stored_expires_at=credential.expires_at.isoformat(),
                refreshed_expires_at=expires_at.isoformat(),
            )
            return AuthorizationRequired(user_id=user_id, reason="refresh_failed")
        scopes = split_scopes(refreshed.scope) or credential.scopes

        try:
            self._repo.upsert(
                CredentialUpsert(
                    user_id=user_id,
                    provider=self._provider,
                    access_token=refreshed.access_token,
                    refresh_token=refreshed.refresh_token or credential.refresh_token,
                    expires_at=expires_at,
                    scopes=scopes,
                )
            )
        except StorageUnavailable as exc:
            # The fresh token is still valid for this turn; the next turn refreshes again.
            logger.error("credential_refresh_persist_failed", user_id=user_id, error=str(exc))

        logger.info("credential_refreshed", user_id=user_id, expires_at=expires_at.isoformat())
        return UsableToken(access_token=refreshed.access_token, expires_at=expires_at, refreshed=True)

    def complete_authorization(self, user_id: str, code: str) -> UsableToken:
        """Exchanges a consent code and stores the resulting credential for ``user_id``.

        Raises ``GoogleOAuthError`` when the exchange fails and
        ``StorageUnavailable`` when the credential cannot be stored.
        """
        exchanged = self._oauth.exchange_code(code)
        existing = self._repo.get(user_id=user_id, provider=self._provider)
        lifetime = exchanged.expires_in
        if not isinstance(lifetime, int) or lifetime <= 0:
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS
        expires_at = self._clock() + timedelta(seconds=lifetime)
        refresh_token = exchanged.refresh_token or (existing.refresh_token if existing else None)
        scopes = split_scopes(exchanged.scope) or (existing.scopes if existing else frozenset())
        self._repo.upsert(
            CredentialUpsert(
                user_id=user_id,
                provider=self._provider,
                access_token=exchanged.access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                scopes=scopes,
            )
        )
        logger.info(
            "credential_authorized",
            user_id=user_id,
            has_refresh_token=bool(refresh_token),
        )
        return UsableToken(access_token=exchanged.access_token, expires_at=expires_at)
