import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _as_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    assistant_name: str
    supabase_url: str | None
    supabase_service_role_key: str | None
    store_timeout_seconds: int
    google_client_id: str | None
    google_client_secret: str | None
    google_redirect_uri: str | None
    google_oauth_timeout_seconds: int
    google_api_timeout_seconds: int
    planner_llm_provider: str
    planner_llm_model: str
    planner_llm_api_key: str | None
    planner_llm_api_base_url: str | None
    planner_llm_timeout_seconds: int
    planner_web_search: bool
    planner_context_turns: int
    max_parallel_actions: int
    log_level: str
    log_json: bool


def load_settings() -> Settings:
    load_dotenv(override=False)
    provider = os.getenv("PLANNER_LLM_PROVIDER", "groq").strip().lower()
    default_model = "llama-3.3-70b-versatile" if provider == "groq" else "gpt-4o-mini"
    planner_key = (
        os.getenv("PLANNER_LLM_API_KEY")
        or (os.getenv("GROQ_API_KEY") if provider == "groq" else os.getenv("OPENAI_API_KEY"))
        or None
    )
    app_url = (os.getenv("APP_URL") or "").strip().rstrip("/")
    redirect_uri = os.getenv("GOOGLE_REDIRECT_URI") or (
        f"{app_url}/api/auth/callback" if app_url else None
    )
    return Settings(
        assistant_name=os.getenv("ASSISTANT_NAME", "Man Friday").strip() or "Man Friday",
        supabase_url=(os.getenv("SUPABASE_URL") or None),
        supabase_service_role_key=(os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None),
        store_timeout_seconds=_as_int(os.getenv("STORE_TIMEOUT_SECONDS"), 8),
        google_client_id=(os.getenv("GOOGLE_CLIENT_ID") or None),
        google_client_secret=(os.getenv("GOOGLE_CLIENT_SECRET") or None),
        google_redirect_uri=redirect_uri,
        google_oauth_timeout_seconds=_as_int(os.getenv("GOOGLE_OAUTH_TIMEOUT_SECONDS"), 8),
        google_api_timeout_seconds=_as_int(os.getenv("GOOGLE_API_TIMEOUT_SECONDS"), 10),
        planner_llm_provider=provider,
        planner_llm_model=os.getenv("PLANNER_LLM_MODEL") or default_model,
        planner_llm_api_key=planner_key,
        planner_llm_api_base_url=(os.getenv("PLANNER_LLM_API_BASE_URL") or None),
        planner_llm_timeout_seconds=_as_int(os.getenv("PLANNER_LLM_TIMEOUT_SECONDS"), 20),
        planner_web_search=_as_bool(os.getenv("PLANNER_WEB_SEARCH"), False),
        planner_context_turns=max(
            0, min(40, _as_int(os.getenv("PLANNER_CONTEXT_TURNS"), 10))
        ),
        max_parallel_actions=max(
            1, min(8, _as_int(os.getenv("MAX_PARALLEL_ACTIONS"), 4))
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_json=_as_bool(os.getenv("LOG_JSON"), True),
    )
