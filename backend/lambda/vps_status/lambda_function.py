"""vps_status/lambda_function.py

Status channel for provisioned VPS workers: workers POST authenticated
callbacks, the operator UI reads and clears records.

Routes (via API Gateway proxy, path-agnostic):
    POST    worker callback      {repo|id, callback_secret, status?, remote_link?,
                                  token_hint?, requested_at?, log_entry?, error?}
    GET     list records         -> {status: "success", users: [...]}
    DELETE  remove one record    {repo|id} -> {status: "success", removed: 1}
            or reset the store   {}        -> {status: "success", removed: N}
    OPTIONS CORS preflight

Auth:
    POST is authenticated by callback_secret = HMAC(CALLBACK_SALT, repo).
    DELETE requires X-Vps-Operator-Key only when VPS_OPERATOR_API_KEY(S) is set.

Environment variables:
    CALLBACK_SALT          default: vps-manager-salt
    VPS_STORE_BACKEND      default: file
    VPS_STORE_PATH         default: /tmp/vpsuser.json
    VPS_STORE_BUCKET       default: ""
    VPS_STORE_KEY          default: vps/vpsuser.json
    VPS_OPERATOR_API_KEYS  default: ""
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from vps_shared import config
from vps_shared.errors import StatusError
from vps_shared.http_utils import _cors_headers, _error, _header, _json_body, _ok, _path_method
from vps_shared.status import INGEST_FIELDS, ingest, list_records, remove_record, reset_records
from vps_shared.store import RecordStore, get_record_store

logger = logging.getLogger()
logger.setLevel(logging.INFO)

OPERATOR_KEY_HEADER = "X-Vps-Operator-Key"

# ---------------------------------------------------------------------------
# Module-level store (reused across warm invocations)
# ---------------------------------------------------------------------------

_store: Optional[RecordStore] = None


def _get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = get_record_store()
    return _store


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record_id(body: Dict[str, Any]) -> Any:
    repo = body.get("repo")
    if repo in (None, ""):
        repo = body.get("id")
    return repo


def _has_record_id(body: Dict[str, Any]) -> bool:
    return "repo" in body or "id" in body


def _operator_authorized(event: Dict[str, Any]) -> bool:
    if not config.OPERATOR_API_KEYS:
        return True
    supplied = _header(event, OPERATOR_KEY_HEADER)
    return bool(supplied) and supplied in config.OPERATOR_API_KEYS


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_callback(event: Dict[str, Any]) -> Dict[str, Any]:
    """POST — apply a worker callback."""
    try:
        body = _json_body(event)
    except ValueError as exc:
        return _error(400, str(exc))

    fields = {name: body[name] for name in INGEST_FIELDS if name in body}
    ingest(_get_store(), _record_id(body), body.get("callback_secret"), fields)
    return _ok()


def _handle_list() -> Dict[str, Any]:
    """GET — sanitized records, most recently updated first."""
    return _ok(users=list_records(_get_store()))


def _handle_delete(event: Dict[str, Any]) -> Dict[str, Any]:
    """DELETE — remove one record, or every record when no id is given."""
    if not _operator_authorized(event):
        return _error(401, "Operator key required")

    try:
        body = _json_body(event)
    except ValueError as exc:
        return _error(400, str(exc))

    # Reset only when no id key is sent at all; an empty id is a bad request.
    query = event.get("queryStringParameters") or {}
    source = body if _has_record_id(body) else query
    if not _has_record_id(source):
        removed = reset_records(_get_store())
        return _ok(removed=removed)

    remove_record(_get_store(), _record_id(source))
    return _ok(removed=1)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    method, path = _path_method(event)

    if method == "OPTIONS":
        return {"statusCode": 204, "headers": _cors_headers(), "body": ""}

    logger.info("[INFO] route method=%s path=%s", method, path)

    try:
        if method == "POST":
            return _handle_callback(event)
        if method == "GET":
            return _handle_list()
        if method == "DELETE":
            return _handle_delete(event)
    except StatusError as exc:
        logger.info("[INFO] rejected method=%s status=%d: %s", method, exc.status_code, exc.message)
        return _error(exc.status_code, exc.message)
    except Exception:
        logger.exception("Unhandled error method=%s path=%s", method, path)
        return _error(500, "Internal error")

    return _error(405, "Method not allowed")
