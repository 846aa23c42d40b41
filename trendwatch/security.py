from __future__ import annotations

import re


def redact_secrets(text: str) -> str:
    """Redact API keys and bearer tokens from log and error strings."""
    if not isinstance(text, str):
        return text

    redacted = re.sub(r"(?i)(api[_-]?key|key|token|secret)=([^&\s]+)", r"\1=***REDACTED***", text)
    redacted = re.sub(r"(?i)(x-api-key|authorization):\s*(bearer\s+)?[A-Za-z0-9._\-]+", r"\1: ***REDACTED***", redacted)
    redacted = re.sub(r"(?i)bearer\s+[A-Za-z0-9._\-]+", "Bearer ***REDACTED***", redacted)
    return redacted


def is_configured_key(value: str | None) -> bool:
    """True when a key is set and is not a template placeholder."""
    if not value or not value.strip():
        return False
    lowered = value.strip().lower()
    return not (lowered.startswith("your_") or "changeme" in lowered or lowered.startswith("${"))
