"""vps_shared.records — Lifecycle record rules.

A record is a plain JSON-compatible dict:

    repo          worker id (repository full name), immutable
    status        creating | provisioning | ready | error | <any ad-hoc value>
    remote_link   absolute http(s) URL, only while the worker is reachable
    token_hint    masked provisioning credential
    requested_at  creation timestamp
    updated_at    last accepted mutation
    logs          [{message, at}], most recent MAX_LOG_ENTRIES only
    error         message, only while status == error

Everything here is pure; persistence lives in ``vps_shared.store``.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from vps_shared.config import MAX_LOG_ENTRIES
from vps_shared.serialization import _now_z, _parse_timestamp

__all__ = [
    "CREATING",
    "ERROR",
    "LOG",
    "MAX_LOG_ENTRIES",
    "READY",
    "REDACTED_FIELDS",
    "append_log",
    "apply_error",
    "clear_error",
    "infer_status",
    "is_valid_remote_link",
    "mask_token",
    "new_record",
    "sanitize_record",
    "sort_records",
]

CREATING = "creating"
READY = "ready"
ERROR = "error"
# Progress ping from the worker: appends to logs, leaves status alone.
LOG = "log"

DEFAULT_ERROR_MESSAGE = "Worker reported an error"

REDACTED_FIELDS = {"callback_secret"}

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


def new_record(repo: str, requested_at: Optional[str] = None) -> Dict[str, Any]:
    return {"repo": repo, "requested_at": requested_at or _now_z()}


def append_log(record: Dict[str, Any], message: str, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Append ``{message, at}`` and keep only the newest MAX_LOG_ENTRIES."""
    if not message:
        return record
    logs = record.get("logs")
    logs = list(logs) if isinstance(logs, list) else []
    logs.append({"message": message, "at": timestamp or _now_z()})
    record["logs"] = logs[-MAX_LOG_ENTRIES:]
    return record


def infer_status(prior: Optional[str], supplied: Optional[str], has_link: bool) -> str:
    """Resolve the status a callback leaves the record in.

    Precedence: explicit status (other than ``log``), then for ``log`` the
    prior status, then ``ready`` when a remote link is set, then the prior
    status, then ``creating``.
    """
    if supplied and supplied != LOG:
        return supplied
    if supplied == LOG and prior:
        return prior
    if has_link:
        return READY
    return prior or CREATING


def apply_error(record: Dict[str, Any], message: Optional[str] = None) -> Dict[str, Any]:
    """Move a record into the error state. A failed worker has no usable link."""
    record["status"] = ERROR
    record["error"] = message or record.get("error") or DEFAULT_ERROR_MESSAGE
    record.pop("remote_link", None)
    return record


def clear_error(record: Dict[str, Any]) -> Dict[str, Any]:
    record.pop("error", None)
    return record


def is_valid_remote_link(url: Any) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.netloc)


def mask_token(token: str = "") -> str:
    """Short, non-reversible hint of a credential for display."""
    token = token or ""
    if len(token) <= 10:
        return f"{token[:3]}***"
    return f"{token[:6]}…{token[-4:]}"


def sanitize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if k not in REDACTED_FIELDS}


def _updated_sort_key(record: Dict[str, Any]) -> tuple:
    parsed = _parse_timestamp(record.get("updated_at"))
    # Records without a usable timestamp go last.
    return (parsed is not None, parsed or _EPOCH)


def sort_records(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Most recently updated first."""
    return sorted(records, key=_updated_sort_key, reverse=True)
