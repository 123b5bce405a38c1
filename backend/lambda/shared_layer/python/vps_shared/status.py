"""vps_shared.status — Callback ingest and status query operations.

Every operation is one synchronous load -> mutate -> save cycle against the
record store. Nothing here locks; see ``vps_shared.store`` for the
last-save-wins behaviour this implies.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from vps_shared.callback_secret import verify_callback_secret
from vps_shared.errors import BadRequest, Forbidden, NotFound
from vps_shared.records import (
    ERROR,
    append_log,
    apply_error,
    clear_error,
    infer_status,
    is_valid_remote_link,
    new_record,
    sanitize_record,
    sort_records,
)
from vps_shared.serialization import _emit_structured_observability, _now_z
from vps_shared.store import RecordStore

logger = logging.getLogger(__name__)

__all__ = [
    "INGEST_FIELDS",
    "ingest",
    "list_records",
    "remove_record",
    "reset_records",
]

INGEST_FIELDS = ("status", "remote_link", "token_hint", "requested_at", "log_entry", "error")


def _optional_str(fields: Dict[str, Any], name: str) -> Optional[str]:
    value = fields.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequest(f"'{name}' must be a string")
    value = value.strip()
    return value or None


def _require_repo(repo: Any) -> str:
    if not isinstance(repo, str) or not repo.strip():
        raise BadRequest("Missing repo")
    # The id is the authentication subject; it is never rewritten.
    if repo != repo.strip():
        raise BadRequest("Invalid repo")
    return repo


def ingest(
    store: RecordStore,
    repo: Any,
    supplied_secret: Any,
    fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Authenticate a worker callback and apply it to the worker's record.

    Returns the sanitized record as saved. Raises BadRequest for missing or
    invalid input and Forbidden when the secret does not match. A rejected
    callback never touches the store.
    """
    fields = fields or {}
    if not isinstance(repo, str) or not repo.strip() or not isinstance(supplied_secret, str) or not supplied_secret:
        raise BadRequest("Missing repo or callback_secret")
    repo = _require_repo(repo)

    if not verify_callback_secret(repo, supplied_secret):
        _emit_structured_observability(
            component="vps_status",
            event="callback_rejected",
            repo=repo,
            error_code="FORBIDDEN",
        )
        raise Forbidden("Invalid callback secret")

    status = _optional_str(fields, "status")
    if status:
        status = status.lower()
    remote_link = _optional_str(fields, "remote_link")
    if remote_link is not None and not is_valid_remote_link(remote_link):
        raise BadRequest("Invalid remote_link")
    token_hint = _optional_str(fields, "token_hint")
    requested_at = _optional_str(fields, "requested_at")
    log_entry = _optional_str(fields, "log_entry")
    error_message = _optional_str(fields, "error")

    records = store.load()
    entry = records.get(repo)
    if not isinstance(entry, dict):
        entry = new_record(repo, requested_at)
    prior_status = entry.get("status")

    if remote_link:
        entry["remote_link"] = remote_link

    effective = infer_status(prior_status, status, bool(entry.get("remote_link")))
    now = _now_z()
    entry["status"] = effective
    entry["updated_at"] = now
    if token_hint and not entry.get("token_hint"):
        entry["token_hint"] = token_hint
    if requested_at:
        entry["requested_at"] = requested_at
    if log_entry:
        append_log(entry, log_entry, now)

    if effective == ERROR:
        apply_error(entry, error_message or log_entry)
    else:
        clear_error(entry)

    records[repo] = entry
    store.save(records)

    _emit_structured_observability(
        component="vps_status",
        event="callback_accepted",
        repo=repo,
        status=effective,
        extra={"prior_status": prior_status or "", "has_remote_link": "remote_link" in entry},
    )
    return sanitize_record(entry)


def list_records(store: RecordStore) -> List[Dict[str, Any]]:
    """Sanitized snapshot of every record, most recently updated first."""
    records = store.load()
    return sort_records(sanitize_record(r) for r in records.values())


def remove_record(store: RecordStore, repo: Any) -> bool:
    repo = _require_repo(repo)
    records = store.load()
    if repo not in records:
        raise NotFound(f"Unknown repo '{repo}'")
    del records[repo]
    store.save(records)
    _emit_structured_observability(component="vps_status", event="record_removed", repo=repo)
    return True


def reset_records(store: RecordStore) -> int:
    """Drop every record. Operator cleanup; there is no confirmation step."""
    removed = len(store.load())
    store.save({})
    logger.info("[INFO] VPS store reset; removed=%d", removed)
    _emit_structured_observability(
        component="vps_status",
        event="records_reset",
        extra={"removed": removed},
    )
    return removed
