"""vps_shared.callback_secret — Per-worker callback secret derivation.

The secret is recomputed from the worker id and the process-wide salt on
every callback instead of being stored with the record, so a worker can
still authenticate after the record store has been wiped. Anyone holding
the salt can forge callbacks for any worker id: treat CALLBACK_SALT as a
credential.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from vps_shared import config


def derive_callback_secret(repo: str, salt: Optional[str] = None) -> str:
    """HMAC-SHA256 of ``repo`` keyed by the salt, as a lowercase hex digest."""
    key = config.CALLBACK_SALT if salt is None else salt
    return hmac.new(
        key.encode("utf-8"),
        (repo or "").encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_callback_secret(repo: str, supplied: str, salt: Optional[str] = None) -> bool:
    if not isinstance(supplied, str) or not supplied:
        return False
    expected = derive_callback_secret(repo, salt)
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))
