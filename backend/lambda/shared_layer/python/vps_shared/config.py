"""vps_shared.config — Environment configuration for the VPS status layer.

All values are read once at import time. Tests and callers may override the
module attributes directly.

Environment variables:
    CALLBACK_SALT                  default: vps-manager-salt (override in any real deployment)
    VPS_STORE_BACKEND              default: file   (file | s3)
    VPS_STORE_PATH                 default: /tmp/vpsuser.json
    VPS_STORE_BUCKET               default: ""
    VPS_STORE_KEY                  default: vps/vpsuser.json
    S3_REGION                      default: us-west-2
    CORS_ORIGIN                    default: *
    VPS_OPERATOR_API_KEY           default: ""
    VPS_OPERATOR_API_KEY_PREVIOUS  default: ""  (rollover key accepted during rotation)
    VPS_OPERATOR_API_KEYS          default: ""  (comma-separated allowlist)
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _normalize_api_keys(*raw_values: str) -> tuple[str, ...]:
    """Return deduplicated, non-empty key values from scalar/csv env sources."""
    keys: list[str] = []
    seen: set[str] = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            key = part.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            keys.append(key)
    return tuple(keys)


# ---------------------------------------------------------------------------
# Callback authentication
# ---------------------------------------------------------------------------

DEFAULT_CALLBACK_SALT = "vps-manager-salt"
CALLBACK_SALT: str = os.environ.get("CALLBACK_SALT", "") or DEFAULT_CALLBACK_SALT

if CALLBACK_SALT == DEFAULT_CALLBACK_SALT:
    logger.warning("[WARNING] CALLBACK_SALT not set; using the built-in default salt")

# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

VPS_STORE_BACKEND: str = os.environ.get("VPS_STORE_BACKEND", "file").strip().lower()
VPS_STORE_PATH: str = os.environ.get("VPS_STORE_PATH", "/tmp/vpsuser.json")
VPS_STORE_BUCKET: str = os.environ.get("VPS_STORE_BUCKET", "")
VPS_STORE_KEY: str = os.environ.get("VPS_STORE_KEY", "vps/vpsuser.json")
S3_REGION: str = os.environ.get("S3_REGION", "us-west-2")

MAX_LOG_ENTRIES = 40

# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

CORS_ORIGIN: str = os.environ.get("CORS_ORIGIN", "*")

OPERATOR_API_KEY: str = os.environ.get("VPS_OPERATOR_API_KEY", "")
OPERATOR_API_KEY_PREVIOUS: str = os.environ.get("VPS_OPERATOR_API_KEY_PREVIOUS", "")
OPERATOR_API_KEYS: tuple[str, ...] = _normalize_api_keys(
    os.environ.get("VPS_OPERATOR_API_KEYS", ""),
    OPERATOR_API_KEY,
    OPERATOR_API_KEY_PREVIOUS,
)
