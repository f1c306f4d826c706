from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Union

from manfriday.actions import ActionCatalog, ActionRequest, ActionResult
from manfriday.errors import PlannerUnavailable

from .conversation import ConversationHistory
from .llm_client import ChatMessage, OpenAICompatibleClient


@dataclass(frozen=True)
class Citation:
    title: str
    uri: str


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class ActionsRequested:
    requests: list[ActionRequest]
    text: str = ""


@dataclass(frozen=True)
class Grounded:
    text: str
    citations: list[Citation] = field(default_factory=list)


PlannerOutcome = Union[PlainText, ActionsRequested, Grounded]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PlannerClient:
    """Serializes a turn into a chat completion and reads back the planner's decision.

    ``plan`` and ``synthesize`` form one logical exchange per user turn: the
    second call replays the first call's tool requests followed by their
    results, in the order the planner emitted them. Nothing is cached
    between turns and failures are never retried here.
    """

    def __init__(
        self,
        llm: OpenAICompatibleClient | None,
        assistant_name: str = "Man Friday",
        web_search: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._llm = llm
        self._assistant_name = assistant_name
        self._web_search = web_search
        self._clock = clock

    def plan(
        self,
        user_message: str,
        history: ConversationHistory,
        catalog: ActionCatalog,
    ) -> PlannerOutcome:
        message = self._require_llm().complete(
            messages=self._conversation(user_message, history),
            tools=catalog.as_tools(),
            temperature=0.2,
            max_tokens=800,
            web_search=self._web_search,
        )
        if message.tool_calls:
            return ActionsRequested(
                requests=parse_tool_calls(message.tool_calls),
                text=message.content,
            )
        citations = parse_citations(message)
        if citations:
            return Grounded(text=message.content, citations=citations)
        return PlainText(text=message.content)

    def synthesize(
        self,
        user_message: str,
        history: ConversationHistory,
        prior: ActionsRequested,
        results: list[ActionResult],
        catalog: ActionCatalog,
    ) -> str:
        if [result.call_id for result in results] != [request.call_id for request in prior.requests]:
            raise ValueError("Action results must align one-to-one with the requested actions.")
        messages = self._conversation(user_message, history)
        messages.append(
            {
                "role": "assistant",
                "content": prior.text or None,
                "tool_calls": [
                    {
                        "id": request.call_id,
                        "type": "function",
                        "function": {
                            "name": request.name,
                            "arguments": json.dumps(request.arguments),
                        },
                    }
                    for request in prior.requests
                ],
            }
        )
        for result in results:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": json.dumps(result.to_payload(), default=str),
                }
            )
        message = self._require_llm().complete(
            messages=messages,
            tools=catalog.as_tools(),
            tool_choice="none",
            temperature=0.3,
            max_tokens=600,
        )
        if not message.content:
            raise PlannerUnavailable("Synthesis returned no text.")
        return render_with_sources(message.content, parse_citations(message))

    def system_directive(self) -> str:
        now = self._clock().astimezone(timezone.utc)
        return (
            f"You are {self._assistant_name}, an elite executive assistant reachable over chat. "
            "Be concise, professional, and proactive. Use the available tools to act on the "
            "user's Gmail, Google Calendar, Google Tasks, and reminders.\n"
            f"Current time (UTC): {now.isoformat(timespec='seconds')}.\n"
            "Rules:\n"
            "- Date-time arguments must be ISO-8601 with a UTC offset.\n"
            "- Call several tools in one turn when the request needs several independent actions.\n"
            "- When a tool result reports success=false, tell the user plainly what failed.\n"
            "- Keep replies short enough for a phone screen."
        )

    def _require_llm(self) -> OpenAICompatibleClient:
        if self._llm is None:
            raise PlannerUnavailable("Planner LLM key missing. Set PLANNER_LLM_API_KEY or GROQ_API_KEY.")
        return self._llm

    def _conversation(self, user_message: str, history: ConversationHistory) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.system_directive()}]
        messages.extend(history.as_messages())
        messages.append({"role": "user", "content": user_message})
        return messages


def parse_tool_calls(tool_calls: list[dict[str, Any]]) -> list[ActionRequest]:
    requests: list[ActionRequest] = []
    for index, call in enumerate(tool_calls):
        function = call.get("function")
        if not isinstance(function, dict):
            raise PlannerUnavailable("Tool call is missing its function block.")
        name = str(function.get("name") or "").strip()
        if not name:
            raise PlannerUnavailable("Tool call is missing a function name.")
        arguments = _decode_arguments(function.get("arguments"))
        call_id = str(call.get("id") or "").strip() or f"call_{index + 1}"
        requests.append(ActionRequest(name=name, arguments=arguments, call_id=call_id))
    return requests


def parse_citations(message: ChatMessage) -> list[Citation]:
    citations: list[Citation] = []
    seen: set[str] = set()
    for annotation in message.annotations:
        if annotation.get("type") != "url_citation":
            continue
        body = annotation.get("url_citation")
        if not isinstance(body, dict):
            continue
        uri = str(body.get("url") or "").strip()
        if not uri or uri in seen:
            continue
        seen.add(uri)
        citations.append(Citation(title=str(body.get("title") or uri).strip(), uri=uri))
    return citations


def render_with_sources(text: str, citations: list[Citation]) -> str:
    if not citations:
        return text
    lines = [text.rstrip(), "", "Sources:"]
    lines.extend(f"- {citation.title}: {citation.uri}" for citation in citations)
    return "\n".join(lines)


def _decode_arguments(raw: object) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise PlannerUnavailable("Tool call arguments must be a JSON object.")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PlannerUnavailable("Tool call arguments are not valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise PlannerUnavailable("Tool call arguments must be a JSON object.")
    return parsed
