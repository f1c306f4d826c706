from __future__ import annotations

import base64
from email.message import EmailMessage
from typing import Any

from .arguments import MailArgs
from .base import ActionContext, ActionExecutor
from .google_api import GoogleApiClient

MAX_LISTED_MESSAGES = 5


class GmailExecutor(ActionExecutor):
    name = "mail"
    description = "Read recent emails or send an email from the user's Gmail account."
    schema: dict[str, object] = {
        "type": "object",
        "required": ["operation"],
        "properties": {
            "operation": {
                "type": "string",
                "enum": ["read", "send"],
                "description": "read lists matching messages, send delivers a new email.",
            },
            "query": {
                "type": "string",
                "description": "Gmail search query for read, e.g. 'is:unread from:jane'.",
            },
            "recipient": {"type": "string", "description": "Recipient address for send."},
            "subject": {"type": "string", "description": "Subject line for send."},
            "body": {"type": "string", "description": "Plain-text body for send."},
        },
    }
    MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
    SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"

    def __init__(self, api: GoogleApiClient) -> None:
        self._api = api

    def parse_arguments(self, arguments: dict[str, Any]) -> MailArgs:
        return MailArgs.from_arguments(arguments)

    def perform(self, context: ActionContext, args: MailArgs) -> dict[str, Any]:
        if args.operation == "send":
            return self._send(context.access_token, args)
        return self._list(context.access_token, args.query)

    def _list(self, access_token: str, query: str) -> dict[str, Any]:
        listing = self._api.get_json(
            self.MESSAGES_URL,
            access_token,
            params={"q": query, "maxResults": str(MAX_LISTED_MESSAGES)},
        )
        refs = listing.get("messages")
        if not isinstance(refs, list):
            return {"query": query, "messages": []}
        messages: list[dict[str, str]] = []
        for ref in refs[:MAX_LISTED_MESSAGES]:
            if not isinstance(ref, dict) or not ref.get("id"):
                continue
            detail = self._api.get_json(
                f"{self.MESSAGES_URL}/{ref['id']}",
                access_token,
                params={
                    "format": "metadata",
                    "metadataHeaders": ["Subject", "From", "Date"],
                },
            )
            messages.append(_normalize_message(detail, fallback_id=str(ref["id"])))
        return {"query": query, "messages": messages}

    def _send(self, access_token: str, args: MailArgs) -> dict[str, Any]:
        payload = self._api.post_json(
            self.SEND_URL,
            access_token,
            body={"raw": build_raw_message(args.recipient, args.subject, args.body)},
        )
        return {
            "id": str(payload.get("id") or ""),
            "thread_id": str(payload.get("threadId") or ""),
            "recipient": args.recipient,
            "subject": args.subject,
        }


def build_raw_message(to_addr: str, subject: str, body: str) -> str:
    message = EmailMessage()
    message["To"] = to_addr
    message["Subject"] = subject
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


def _normalize_message(payload: dict[str, Any], fallback_id: str) -> dict[str, str]:
    headers = _headers_to_map(payload.get("payload"))
    return {
        "id": str(payload.get("id") or fallback_id),
        "thread_id": str(payload.get("threadId") or ""),
        "subject": headers.get("subject", ""),
        "from": headers.get("from", ""),
        "date": headers.get("date", ""),
        "snippet": str(payload.get("snippet") or "").strip(),
    }


def _headers_to_map(message_payload: object) -> dict[str, str]:
    if not isinstance(message_payload, dict):
        return {}
    headers = message_payload.get("headers")
    if not isinstance(headers, list):
        return {}
    out: dict[str, str] = {}
    for header in headers:
        if not isinstance(header, dict):
            continue
        name = str(header.get("name") or "").strip().lower()
        value = str(header.get("value") or "").strip()
        if name and name not in out:
            out[name] = value
    return out
