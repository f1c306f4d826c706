from __future__ import annotations

from typing import Any

import requests

from manfriday.errors import ProviderError
from manfriday.services.redaction import redact_sensitive_text

from .base import AUTH_REJECTED, MALFORMED_RESPONSE, NETWORK_ERROR, PROVIDER_ERROR, RATE_LIMITED


class GoogleApiClient:
    """Bearer-token JSON calls against Google Workspace REST endpoints.

    HTTP and transport failures are raised as ``ProviderError`` carrying the
    ActionResult reason code.
    """

    def __init__(self, session: requests.Session | None = None, timeout_seconds: int = 10) -> None:
        # None means one connection per call via the module-level requests API.
        self.session = session
        self.timeout_seconds = max(1, int(timeout_seconds))

    def get_json(
        self, url: str, access_token: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self._call("GET", url, access_token, params=params)

    def post_json(
        self, url: str, access_token: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self._call("POST", url, access_token, json=body)

    def patch_json(
        self, url: str, access_token: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self._call("PATCH", url, access_token, json=body)

    def _call(
        self,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = (self.session or requests).request(
                method,
                url,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {access_token}",
                },
                params=params,
                json=json,
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise ProviderError(NETWORK_ERROR, "Google API request timed out.") from exc
        except requests.RequestException as exc:
            raise ProviderError(NETWORK_ERROR, f"Google API request failed: {exc.__class__.__name__}") from exc

        status = response.status_code
        # Gmail and Calendar report per-user quota exhaustion as 403.
        if status == 429 or (status == 403 and "ratelimitexceeded" in response.text.lower()):
            raise ProviderError(RATE_LIMITED, "Google rate limit reached. Try again shortly.")
        if status in {401, 403}:
            raise ProviderError(AUTH_REJECTED, "Google rejected the authorization. Please reconnect Google.")
        if not response.ok:
            detail = redact_sensitive_text(response.text.strip(), max_len=200)
            raise ProviderError(PROVIDER_ERROR, f"Google API failed ({status}). {detail}".strip())
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(MALFORMED_RESPONSE, "Google API returned a non-JSON payload.") from exc
        if not isinstance(payload, dict):
            raise ProviderError(MALFORMED_RESPONSE, "Google API returned an unexpected payload.")
        return payload
