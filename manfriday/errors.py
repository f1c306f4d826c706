from __future__ import annotations


class StorageUnavailable(RuntimeError):
    """The record store could not be reached or answered with an error."""


class PlannerUnavailable(RuntimeError):
    """The language-model service failed or returned something unparseable."""


class InvalidArguments(ValueError):
    """An action request is missing required arguments or has malformed ones."""


class ProviderError(RuntimeError):
    """An external provider rejected or failed an action call.

    ``code`` is one of the ActionResult reason codes (``auth_rejected``,
    ``rate_limited``, ``provider_error``, ``network_error``,
    ``malformed_response``).
    """

    def __init__(self, code: str, detail: str = "") -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code
