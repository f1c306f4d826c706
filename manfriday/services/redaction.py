from __future__ import annotations

import re


_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+[a-z0-9\-._~+/]+=*")
_TOKEN_FIELD_PATTERN = re.compile(
    r"(?i)([\"']?\b(?:access|refresh|id)_token\b[\"']?\s*[:=]\s*)[\"']?[^\"'&,\s}]+[\"']?"
)
_CLIENT_SECRET_PATTERN = re.compile(r"(?i)(\bclient_secret\b\s*[:=]\s*)[^&,\s}]+")


def redact_sensitive_text(value: str | None, max_len: int = 400) -> str:
    """Strip bearer tokens and token fields from provider error text before logging."""
    if not value:
        return ""
    out = _BEARER_PATTERN.sub("Bearer [REDACTED]", value)
    out = _TOKEN_FIELD_PATTERN.sub(r"\1[REDACTED]", out)
    out = _CLIENT_SECRET_PATTERN.sub(r"\1[REDACTED]", out)
    if len(out) > max_len:
        out = out[:max_len] + "..."
    return out
