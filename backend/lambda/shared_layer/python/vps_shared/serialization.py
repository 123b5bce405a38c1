"""vps_shared.serialization — Timestamp helpers and structured log events."""

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def _now_z() -> str:
    """Current UTC timestamp in ISO 8601 format with Z suffix."""
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """Parse an ISO 8601 timestamp (``Z`` or offset form) into an aware datetime.

    Returns None for missing or unparseable values. Naive values are taken as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _emit_structured_observability(
    *,
    component: str,
    event: str,
    repo: Optional[str] = None,
    status: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    payload: Dict[str, Any] = {
        "timestamp": _now_z(),
        "component": component,
        "event": event,
        "repo": str(repo or ""),
        "status": str(status or ""),
        "error_code": str(error_code or ""),
    }
    if extra:
        payload.update(extra)
    logger.info("[OBSERVABILITY] %s", json.dumps(payload, sort_keys=True, default=str))
