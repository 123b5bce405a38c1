"""vps_shared.provisioning — Record side of provisioning a worker.

The request to the source-control host that actually creates the worker is
made elsewhere. These helpers cover what that caller needs from us: a
pending record, the environment the worker boots with, and a way to flag a
provisioning failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from vps_shared.callback_secret import derive_callback_secret
from vps_shared.records import CREATING, append_log, apply_error
from vps_shared.serialization import _now_z
from vps_shared.store import RecordStore

logger = logging.getLogger(__name__)


def register_pending(
    store: RecordStore,
    repo: str,
    token_hint: str,
    requested_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Create (or replace) the record for a freshly dispatched worker."""
    requested_at = requested_at or _now_z()
    records = store.load()
    record = append_log(
        {
            "repo": repo,
            "token_hint": token_hint,
            "status": CREATING,
            "updated_at": requested_at,
            "requested_at": requested_at,
        },
        "Workflow dispatched",
        requested_at,
    )
    records[repo] = record
    store.save(records)
    logger.info("[INFO] Registered pending VPS repo=%s", repo)
    return record


def mark_error(store: RecordStore, repo: str, message: str) -> bool:
    """Flag a known record as failed. Unknown or empty repo is a no-op."""
    if not repo:
        return False
    records = store.load()
    record = records.get(repo)
    if not isinstance(record, dict):
        return False
    now = _now_z()
    apply_error(record, message)
    record["updated_at"] = now
    append_log(record, f"❌ {message}", now)
    records[repo] = record
    store.save(records)
    logger.warning("[WARNING] VPS provisioning failed repo=%s: %s", repo, message)
    return True


def worker_environment(
    repo: str,
    callback_url: str,
    token_hint: str,
    requested_at: str,
) -> Dict[str, str]:
    """Environment a worker needs to report back to the status endpoint."""
    return {
        "REPO_FULL_NAME": repo,
        "CALLBACK_URL": callback_url,
        "CALLBACK_SECRET": derive_callback_secret(repo),
        "TOKEN_HINT": token_hint,
        "REQUESTED_AT": requested_at,
    }
