"""Structured audit log for branding mutations. No secrets or file contents in output."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("rebrand.audit")

# Redact keys that may contain secrets
REDACT_KEYS = frozenset({"token", "password", "secret", "csrf_token", "authorization", "cookie"})


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: "[REDACTED]" if (isinstance(k, str) and k.lower() in REDACT_KEYS) else _redact(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_redact(v) for v in obj]
    if isinstance(obj, bytes):
        return f"<{len(obj)} bytes>"
    return obj


def audit(event: str, actor_id: int | None = None, **kwargs: Any) -> None:
    """Log a structured audit event, e.g. audit("head.apply", actor_id=1, backup_id=7)."""
    payload = _redact(dict(kwargs))
    payload["event"] = event
    if actor_id is not None:
        payload["actor_id"] = actor_id
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.info("audit: %s", payload)
