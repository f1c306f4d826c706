from .conversation import ConversationHistory, ConversationTurn
from .conversation_log_repo import ConversationLogRepository
from .credentials import AuthorizationRequired, CredentialLifecycleManager, UsableToken
from .credentials_repo import Credential, CredentialsRepository, CredentialUpsert
from .google_oauth import GoogleOAuthError, GoogleOAuthService
from .identity import IdentityResolver, ResolvedIdentity
from .llm_client import OpenAICompatibleClient, OpenAICompatibleConfig
from .postgrest import PostgrestClient
from .reminders_repo import ReminderRecord, RemindersRepository
from .reply import OutboundReply, TwimlReplyEmitter
from .users_repo import User, UsersRepository

__all__ = [
    "AuthorizationRequired",
    "ConversationHistory",
    "ConversationLogRepository",
    "ConversationTurn",
    "Credential",
    "CredentialLifecycleManager",
    "CredentialsRepository",
    "CredentialUpsert",
    "GoogleOAuthError",
    "GoogleOAuthService",
    "IdentityResolver",
    "OpenAICompatibleClient",
    "OpenAICompatibleConfig",
    "OutboundReply",
    "PostgrestClient",
    "ReminderRecord",
    "RemindersRepository",
    "ResolvedIdentity",
    "TwimlReplyEmitter",
    "UsableToken",
    "User",
    "UsersRepository",
    "ActionDispatcher",
    "InboundMessage",
    "Orchestrator",
    "OrchestratorResult",
    "PlannerClient",
]


def __getattr__(name: str):
    # These modules import manfriday.actions, which itself imports this package.
    if name in {"InboundMessage", "Orchestrator", "OrchestratorResult"}:
        from . import orchestrator

        return getattr(orchestrator, name)
    if name == "PlannerClient":
        from .planner import PlannerClient

        return PlannerClient
    if name == "ActionDispatcher":
        from .dispatcher import ActionDispatcher

        return ActionDispatcher
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
