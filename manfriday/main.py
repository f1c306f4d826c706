from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError

from manfriday.actions import (
    ActionCatalog,
    GmailExecutor,
    GoogleApiClient,
    GoogleCalendarExecutor,
    GoogleTasksExecutor,
    ReminderExecutor,
)
from manfriday.config import Settings, load_settings
from manfriday.errors import StorageUnavailable
from manfriday.logging_setup import configure_logging, get_logger
from manfriday.models import MAX_INBOUND_BODY_CHARS, HealthResponse, InboundWebhookMessage
from manfriday.services.conversation_log_repo import ConversationLogRepository
from manfriday.services.credentials import CredentialLifecycleManager
from manfriday.services.credentials_repo import CredentialsRepository
from manfriday.services.dispatcher import ActionDispatcher
from manfriday.services.google_oauth import GoogleOAuthError, GoogleOAuthService
from manfriday.services.identity import IdentityResolver
from manfriday.services.llm_client import OpenAICompatibleClient, OpenAICompatibleConfig
from manfriday.services.orchestrator import InboundMessage, Orchestrator
from manfriday.services.planner import PlannerClient
from manfriday.services.postgrest import PostgrestClient
from manfriday.services.reminders_repo import RemindersRepository
from manfriday.services.users_repo import UsersRepository

logger = get_logger(__name__)

AUTH_SUCCESS_PAGE = (
    "<html><body style=\"font-family: sans-serif; text-align: center; padding: 40px;\">"
    "<h1>Auth Successful!</h1>"
    "<p>You can close this window and return to WhatsApp.</p>"
    "</body></html>"
)


@dataclass
class AppServices:
    store: PostgrestClient
    oauth: GoogleOAuthService
    credentials: CredentialLifecycleManager
    orchestrator: Orchestrator


def build_action_catalog(api: GoogleApiClient, reminders: RemindersRepository) -> ActionCatalog:
    catalog = ActionCatalog()
    catalog.register(GmailExecutor(api))
    catalog.register(GoogleCalendarExecutor(api))
    catalog.register(GoogleTasksExecutor(api))
    catalog.register(ReminderExecutor(reminders))
    return catalog


def build_services(settings: Settings) -> AppServices:
    store = PostgrestClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout_seconds=settings.store_timeout_seconds,
    )
    oauth = GoogleOAuthService(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        timeout_seconds=settings.google_oauth_timeout_seconds,
    )
    credentials = CredentialLifecycleManager(repo=CredentialsRepository(store), oauth=oauth)
    return AppServices(
        store=store,
        oauth=oauth,
        credentials=credentials,
        orchestrator=_build_orchestrator(settings, store, oauth, credentials),
    )


def _build_orchestrator(
    settings: Settings,
    store: PostgrestClient,
    oauth: GoogleOAuthService,
    credentials: CredentialLifecycleManager,
) -> Orchestrator:
    planner_key = (settings.planner_llm_api_key or "").strip()
    planner_llm = None
    if planner_key:
        planner_llm = OpenAICompatibleClient(
            OpenAICompatibleConfig(
                provider=settings.planner_llm_provider,
                model=settings.planner_llm_model,
                api_key=planner_key,
                api_base_url=settings.planner_llm_api_base_url,
                timeout_seconds=settings.planner_llm_timeout_seconds,
            )
        )
    catalog = build_action_catalog(
        GoogleApiClient(timeout_seconds=settings.google_api_timeout_seconds),
        RemindersRepository(store),
    )
    return Orchestrator(
        identity=IdentityResolver(UsersRepository(store)),
        credentials=credentials,
        oauth=oauth,
        planner=PlannerClient(
            llm=planner_llm,
            assistant_name=settings.assistant_name,
            web_search=settings.planner_web_search,
        ),
        dispatcher=ActionDispatcher(catalog, max_workers=settings.max_parallel_actions),
        catalog=catalog,
        conversation_log=ConversationLogRepository(store),
        assistant_name=settings.assistant_name,
        history_turns=settings.planner_context_turns,
    )


def create_app(services: AppServices | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            settings = load_settings()
            configure_logging(level=settings.log_level, json_output=settings.log_json)
            app.state.services = build_services(settings)
            logger.info(
                "app_started",
                planner_enabled=bool((settings.planner_llm_api_key or "").strip()),
                store_configured=app.state.services.store.is_configured(),
            )
        yield

    app = FastAPI(title="Man Friday API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/api/webhook")
    def webhook(
        request: Request,
        sender: str = Form(default="", alias="From"),
        body: str = Form(default="", alias="Body"),
        message_sid: str | None = Form(default=None, alias="MessageSid"),
    ) -> Response:
        orchestrator = _services(request).orchestrator
        if not sender.strip():
            raise HTTPException(status_code=400, detail="Sender address is required.")
        try:
            inbound = InboundWebhookMessage(
                sender=sender.strip(),
                body=body[:MAX_INBOUND_BODY_CHARS],
                message_sid=message_sid or None,
            )
        except ValidationError as exc:
            fields = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
            raise HTTPException(status_code=400, detail=f"Invalid webhook fields: {', '.join(fields)}.") from exc

        result = orchestrator.handle_message(
            InboundMessage(
                sender_address=inbound.sender,
                body=inbound.body,
                message_id=inbound.message_sid,
            )
        )
        return Response(content=result.reply.body, media_type=result.reply.media_type)

    @app.get("/api/auth/callback", response_class=HTMLResponse)
    def auth_callback(
        request: Request,
        code: str | None = None,
        state: str | None = None,
    ) -> HTMLResponse:
        if not (code or "").strip() or not (state or "").strip():
            raise HTTPException(status_code=400, detail="Missing code or state.")
        services = _services(request)
        if not services.store.is_configured():
            raise HTTPException(
                status_code=503,
                detail="Credential store is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.",
            )
        if not services.oauth.is_configured():
            raise HTTPException(
                status_code=503,
                detail=(
                    "Google OAuth is not configured. "
                    "Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, and APP_URL or GOOGLE_REDIRECT_URI."
                ),
            )
        user_id = state.strip()
        try:
            services.credentials.complete_authorization(user_id=user_id, code=code.strip())
        except GoogleOAuthError as exc:
            logger.info("authorization_exchange_failed", user_id=user_id, error=str(exc))
            raise HTTPException(status_code=400, detail="Authentication failed.") from exc
        except StorageUnavailable as exc:
            logger.error("authorization_store_failed", user_id=user_id, error=str(exc))
            raise HTTPException(status_code=503, detail="Could not save the authorization.") from exc
        return HTMLResponse(content=AUTH_SUCCESS_PAGE)

    return app


def _services(request: Request) -> AppServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up.")
    return services


app = create_app()
