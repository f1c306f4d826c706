from __future__ import annotations

import re
from dataclasses import dataclass
from xml.sax.saxutils import escape

TWIML_MEDIA_TYPE = "text/xml"
MAX_REPLY_CHARS = 4000

# Control characters XML 1.0 cannot carry, even escaped.
_XML_INVALID_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


@dataclass(frozen=True)
class OutboundReply:
    text: str
    body: str
    media_type: str = TWIML_MEDIA_TYPE


class TwimlReplyEmitter:
    """Wraps reply text in a TwiML ``<Message>`` envelope for the Twilio webhook."""

    def __init__(self, max_chars: int = MAX_REPLY_CHARS) -> None:
        self._max_chars = max(1, max_chars)

    def emit(self, text: str) -> OutboundReply:
        clean = _XML_INVALID_CHARS.sub("", text or "").strip()
        if len(clean) > self._max_chars:
            clean = clean[: self._max_chars - 3].rstrip() + "..."
        body = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f"<Response><Message>{escape(clean)}</Message></Response>"
        )
        return OutboundReply(text=clean, body=body)
