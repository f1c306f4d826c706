from __future__ import annotations

from dataclasses import dataclass, field
from uuid import uuid4

from structlog.contextvars import bound_contextvars

from manfriday.actions import ActionCatalog, ActionContext, ActionResult
from manfriday.errors import PlannerUnavailable, StorageUnavailable
from manfriday.logging_setup import get_logger

from .conversation import ConversationHistory, ConversationTurn
from .conversation_log_repo import ConversationLogRepository
from .credentials import AuthorizationRequired, CredentialLifecycleManager
from .dispatcher import ActionDispatcher
from .google_oauth import GoogleOAuthService
from .identity import IdentityResolver, ResolvedIdentity
from .planner import ActionsRequested, Grounded, PlannerClient, render_with_sources
from .reply import OutboundReply, TwimlReplyEmitter

SYSTEM_ERROR_REPLY = "I encountered a system error. Please try again in a moment."
PLANNER_UNAVAILABLE_REPLY = (
    "I'm having trouble thinking that through right now. Please try again in a moment."
)
EMPTY_MESSAGE_REPLY = "Send me a message with what you need and I'll get to work."

logger = get_logger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    sender_address: str
    body: str
    message_id: str | None = None


@dataclass(frozen=True)
class OrchestratorResult:
    reply: OutboundReply
    status: str
    action_results: list[ActionResult] = field(default_factory=list)


class Orchestrator:
    """Turns one inbound message into exactly one reply.

    Received -> IdentityResolved -> CredentialChecked -> Planned ->
    [Dispatching -> ResultsCollected] -> Synthesized -> Replied.

    The orchestrator keeps no state between messages. Planner and action
    calls are never retried automatically; the user's next message is the
    retry path.
    """

    def __init__(
        self,
        *,
        identity: IdentityResolver,
        credentials: CredentialLifecycleManager,
        oauth: GoogleOAuthService,
        planner: PlannerClient,
        dispatcher: ActionDispatcher,
        catalog: ActionCatalog,
        conversation_log: ConversationLogRepository | None = None,
        emitter: TwimlReplyEmitter | None = None,
        assistant_name: str = "Man Friday",
        history_turns: int = 10,
    ) -> None:
        self._identity = identity
        self._credentials = credentials
        self._oauth = oauth
        self._planner = planner
        self._dispatcher = dispatcher
        self._catalog = catalog
        self._conversation_log = conversation_log
        self._emitter = emitter or TwimlReplyEmitter()
        self._assistant_name = assistant_name
        self._history_turns = max(0, history_turns)

    def handle_message(self, message: InboundMessage) -> OrchestratorResult:
        correlation_id = message.message_id or uuid4().hex[:12]
        with bound_contextvars(correlation_id=correlation_id):
            logger.info("message_received", body_chars=len(message.body or ""))
            results: list[ActionResult] = []
            try:
                status, text, results = self._run(message)
            except StorageUnavailable as exc:
                logger.error("storage_unavailable", error=str(exc))
                status, text = "storage_unavailable", SYSTEM_ERROR_REPLY
            except PlannerUnavailable as exc:
                logger.error("planner_unavailable", error=str(exc))
                status, text = "planner_unavailable", PLANNER_UNAVAILABLE_REPLY
            except Exception:
                logger.exception("turn_failed")
                status, text = "system_error", SYSTEM_ERROR_REPLY
            reply = self._emitter.emit(text)
            logger.info("reply_emitted", status=status, reply_chars=len(reply.text))
            return OrchestratorResult(reply=reply, status=status, action_results=results)

    def _run(self, message: InboundMessage) -> tuple[str, str, list[ActionResult]]:
        identity = self._identity.resolve(message.sender_address)
        user_id = identity.user.id
        with bound_contextvars(user_id=user_id):
            token = self._credentials.obtain_usable_token(user_id)
            if isinstance(token, AuthorizationRequired):
                logger.info("authorization_required", reason=token.reason, new_user=identity.created)
                return "authorization_required", self._authorization_reply(identity, token), []

            text = (message.body or "").strip()
            if not text:
                return "empty_message", EMPTY_MESSAGE_REPLY, []

            history = self._load_history(user_id)
            outcome = self._planner.plan(text, history, self._catalog)

            results: list[ActionResult] = []
            status = "answered"
            if isinstance(outcome, ActionsRequested):
                logger.info("actions_requested", actions=[request.name for request in outcome.requests])
                results = self._dispatcher.dispatch(
                    ActionContext(access_token=token.access_token, user_id=user_id),
                    outcome.requests,
                )
                try:
                    reply_text = self._planner.synthesize(
                        text, history, outcome, results, self._catalog
                    )
                    status = "actions_executed"
                except PlannerUnavailable as exc:
                    logger.error("synthesis_unavailable", error=str(exc))
                    reply_text = summarize_results(results)
                    status = "synthesis_unavailable"
            elif isinstance(outcome, Grounded):
                reply_text = render_with_sources(outcome.text, outcome.citations)
            else:
                reply_text = outcome.text

            self._record_turn(user_id, text, reply_text)
            return status, reply_text, results

    def _authorization_reply(self, identity: ResolvedIdentity, outcome: AuthorizationRequired) -> str:
        if not self._oauth.is_configured():
            raise RuntimeError("Google OAuth is not configured; cannot issue an authorization link.")
        url = self._oauth.build_authorization_url(state=identity.user.id)
        if identity.created:
            return (
                f"Welcome to {self._assistant_name}!\n\n"
                "I need to connect to your Google Workspace to be effective.\n\n"
                f"Please authorize me here:\n{url}"
            )
        if outcome.reason == "missing":
            return f"I still need access to your Google Workspace. Please authorize me here:\n{url}"
        return f"My connection to your Google account has expired. Please reconnect:\n{url}"

    def _load_history(self, user_id: str) -> ConversationHistory:
        if self._conversation_log is None or self._history_turns == 0:
            return ConversationHistory()
        try:
            return self._conversation_log.recent_history(user_id, limit=self._history_turns)
        except StorageUnavailable as exc:
            logger.warning("history_unavailable", error=str(exc))
            return ConversationHistory()

    def _record_turn(self, user_id: str, user_text: str, reply_text: str) -> None:
        if self._conversation_log is None:
            return
        try:
            self._conversation_log.append(
                user_id,
                [
                    ConversationTurn(role="user", content=user_text),
                    ConversationTurn(role="assistant", content=reply_text),
                ],
            )
        except StorageUnavailable as exc:
            logger.warning("history_append_failed", error=str(exc))


def summarize_results(results: list[ActionResult]) -> str:
    """Plain status list used when the planner cannot write the summary itself."""
    lines = ["I couldn't write up a summary just now, but here is what happened:"]
    for result in results:
        if result.success:
            lines.append(f"- {result.name}: done")
        else:
            lines.append(f"- {result.name}: failed ({result.reason})")
    return "\n".join(lines)
