from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from manfriday.errors import PlannerUnavailable

from .redaction import redact_sensitive_text


@dataclass(frozen=True)
class OpenAICompatibleConfig:
    provider: str
    model: str
    api_key: str
    timeout_seconds: int
    api_base_url: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    """The assistant message of a chat completion, as returned by the provider."""

    content: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    annotations: list[dict[str, Any]] = field(default_factory=list)


class OpenAICompatibleClient:
    def __init__(self, cfg: OpenAICompatibleConfig, session: requests.Session | None = None) -> None:
        provider = (cfg.provider or "").strip().lower()
        if provider not in {"groq", "openai", "openai_compatible"}:
            raise ValueError("provider must be one of: groq, openai, openai_compatible")

        api_key = (cfg.api_key or "").strip()
        if not api_key:
            raise ValueError("LLM API key is required.")

        self._model = (cfg.model or "").strip()
        if not self._model:
            raise ValueError("LLM model is required.")

        self._api_key = api_key
        self._timeout_seconds = max(1, int(cfg.timeout_seconds))
        base = (cfg.api_base_url or "").strip()
        if not base:
            if provider == "groq":
                base = "https://api.groq.com/openai/v1"
            else:
                base = "https://api.openai.com/v1"
        self._base_url = base.rstrip("/")
        # None means one connection per call via the module-level requests API.
        self._session = session

    @property
    def model(self) -> str:
        return self._model

    def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[dict[str, object]] | None = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        tool_choice: str = "auto",
        web_search: bool = False,
    ) -> ChatMessage:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice
        if web_search:
            payload["web_search_options"] = {}
        try:
            response = (self._session or requests).post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise PlannerUnavailable(f"LLM request failed: {exc.__class__.__name__}") from exc
        if not response.ok:
            detail = redact_sensitive_text(response.text.strip())
            raise PlannerUnavailable(
                f"LLM completion failed ({response.status_code}): {detail or 'request failed'}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise PlannerUnavailable("LLM completion returned a non-JSON payload.") from exc
        return parse_chat_message(body)


def parse_chat_message(body: object) -> ChatMessage:
    if not isinstance(body, dict):
        raise PlannerUnavailable("LLM completion returned unexpected payload.")
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise PlannerUnavailable("LLM completion returned no choices.")
    row = choices[0]
    if not isinstance(row, dict):
        raise PlannerUnavailable("LLM completion returned malformed choice row.")
    message = row.get("message")
    if not isinstance(message, dict):
        raise PlannerUnavailable("LLM completion missing message payload.")

    content = message.get("content")
    if isinstance(content, list):
        chunks = [
            str(part.get("text", "")).strip()
            for part in content
            if isinstance(part, dict) and str(part.get("text", "")).strip()
        ]
        content = "\n".join(chunks)
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise PlannerUnavailable("LLM completion content is not text.")

    tool_calls = message.get("tool_calls")
    if tool_calls is None:
        tool_calls = []
    if not isinstance(tool_calls, list):
        raise PlannerUnavailable("LLM completion tool_calls is not a list.")

    annotations = message.get("annotations")
    if not isinstance(annotations, list):
        annotations = []

    if not content.strip() and not tool_calls:
        raise PlannerUnavailable("LLM completion missing content.")
    return ChatMessage(
        content=content.strip(),
        tool_calls=[call for call in tool_calls if isinstance(call, dict)],
        annotations=[item for item in annotations if isinstance(item, dict)],
    )
