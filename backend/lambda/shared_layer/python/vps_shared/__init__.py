"""vps_shared — Shared core for the VPS status Lambda functions.

Provides:
    - Deterministic callback secret derivation (HMAC-SHA256)
    - Whole-collection record store (local JSON file or S3 object)
    - Lifecycle record rules (status inference, bounded logs, sanitizing)
    - Callback ingest and status query operations
    - HTTP response helpers with CORS
"""

__version__ = "1.0.0"
