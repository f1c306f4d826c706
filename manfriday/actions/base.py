from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from manfriday.errors import InvalidArguments, ProviderError, StorageUnavailable

INVALID_ARGUMENTS = "invalid_arguments"
UNKNOWN_ACTION = "unknown_action"
AUTH_REJECTED = "auth_rejected"
RATE_LIMITED = "rate_limited"
PROVIDER_ERROR = "provider_error"
NETWORK_ERROR = "network_error"
MALFORMED_RESPONSE = "malformed_response"
STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(frozen=True)
class ActionContext:
    access_token: str
    user_id: str


@dataclass(frozen=True)
class ActionRequest:
    name: str
    arguments: dict[str, Any]
    call_id: str = ""


@dataclass(frozen=True)
class ActionResult:
    call_id: str
    name: str
    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, request: ActionRequest, payload: dict[str, Any]) -> "ActionResult":
        return cls(call_id=request.call_id, name=request.name, success=True, payload=payload)

    @classmethod
    def failed(cls, request: ActionRequest, reason: str, detail: str = "") -> "ActionResult":
        return cls(
            call_id=request.call_id,
            name=request.name,
            success=False,
            reason=reason,
            detail=detail or reason,
        )

    def to_payload(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.payload}
        return {"success": False, "reason": self.reason, "detail": self.detail}


class ActionExecutor(ABC):
    """One external capability offered to the planner.

    Subclasses parse the loose argument mapping into their own typed
    structure and perform the call. ``execute`` is the boundary: it never
    raises, every failure becomes an unsuccessful ``ActionResult``.
    """

    name: str
    description: str
    schema: dict[str, object]

    @abstractmethod
    def parse_arguments(self, arguments: dict[str, Any]) -> Any:
        raise NotImplementedError

    @abstractmethod
    def perform(self, context: ActionContext, args: Any) -> dict[str, Any]:
        raise NotImplementedError

    def execute(self, context: ActionContext, request: ActionRequest) -> ActionResult:
        try:
            args = self.parse_arguments(request.arguments)
        except InvalidArguments as exc:
            return ActionResult.failed(request, INVALID_ARGUMENTS, str(exc))
        try:
            payload = self.perform(context, args)
        except ProviderError as exc:
            return ActionResult.failed(request, exc.code, exc.detail)
        except StorageUnavailable as exc:
            return ActionResult.failed(request, STORAGE_UNAVAILABLE, str(exc))
        return ActionResult.ok(request, payload)
