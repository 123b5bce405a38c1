"""vps_shared.store — Whole-collection record persistence.

The full ``repo -> record`` mapping is read and written as one JSON object.
There is no per-record locking and no transaction boundary: two requests
that load, mutate and save concurrently race, and the later save wins,
silently dropping the other request's change. The persisted blob may also
live in transient storage (``/tmp`` of a serverless container) that is wiped
outside our control. Callers treat the store as a best-effort cache that the
next worker callback rebuilds.

Backends implement ``_read``/``_write`` and raise ``StoreUnavailable`` on
failure. The public ``load``/``save`` never raise:

    load() -> {} when the blob is missing, empty, corrupt or unreadable
    save() -> False (and an error log line) when the write fails
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from vps_shared import config
from vps_shared.aws_clients import _get_s3
from vps_shared.errors import StoreUnavailable

logger = logging.getLogger(__name__)

__all__ = [
    "FileRecordStore",
    "RecordStore",
    "S3RecordStore",
    "get_record_store",
]


def _decode_records(raw: Optional[str], source: str) -> Dict[str, Dict[str, Any]]:
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StoreUnavailable(f"Corrupt record store at {source}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise StoreUnavailable(f"Record store at {source} is not a JSON object")
    return {k: v for k, v in parsed.items() if isinstance(v, dict)}


def _encode_records(records: Dict[str, Dict[str, Any]]) -> str:
    return json.dumps(records, indent=2, ensure_ascii=False, default=str)


class RecordStore(ABC):
    """Load/save of the full record collection to a single blob."""

    backend_type = "abstract"

    def load(self) -> Dict[str, Dict[str, Any]]:
        """Return every record keyed by repo. Never raises."""
        try:
            return self._read()
        except StoreUnavailable as exc:
            logger.warning("[WARNING] Failed to read VPS store (%s): %s", self.backend_type, exc)
            return {}

    def save(self, records: Dict[str, Dict[str, Any]]) -> bool:
        """Persist the whole collection. Returns False on failure, never raises."""
        try:
            self._write(records)
            return True
        except StoreUnavailable as exc:
            logger.error("[ERROR] Failed to persist VPS store (%s): %s", self.backend_type, exc)
            return False

    @abstractmethod
    def _read(self) -> Dict[str, Dict[str, Any]]:
        pass

    @abstractmethod
    def _write(self, records: Dict[str, Dict[str, Any]]) -> None:
        pass


class FileRecordStore(RecordStore):
    """JSON file on local (usually ephemeral) disk."""

    backend_type = "file"

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or config.VPS_STORE_PATH

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read {self.path}: {exc}") from exc
        return _decode_records(raw, self.path)

    def _write(self, records: Dict[str, Dict[str, Any]]) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(_encode_records(records))
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write {self.path}: {exc}") from exc


class S3RecordStore(RecordStore):
    """Single JSON object in S3. Swap-in for deployments without a shared disk."""

    backend_type = "s3"

    def __init__(self, bucket: Optional[str] = None, key: Optional[str] = None) -> None:
        self.bucket = bucket if bucket is not None else config.VPS_STORE_BUCKET
        self.key = key or config.VPS_STORE_KEY

    def _location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.bucket:
            raise StoreUnavailable("VPS_STORE_BUCKET not set")
        try:
            resp = _get_s3().get_object(Bucket=self.bucket, Key=self.key)
            raw = resp["Body"].read().decode("utf-8")
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return {}
            raise StoreUnavailable(f"Cannot read {self._location()}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Cannot read {self._location()}: {exc}") from exc
        return _decode_records(raw, self._location())

    def _write(self, records: Dict[str, Dict[str, Any]]) -> None:
        if not self.bucket:
            raise StoreUnavailable("VPS_STORE_BUCKET not set")
        try:
            _get_s3().put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=_encode_records(records).encode("utf-8"),
                ContentType="application/json; charset=utf-8",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailable(f"Cannot write {self._location()}: {exc}") from exc


def get_record_store() -> RecordStore:
    """Build the store selected by VPS_STORE_BACKEND ('file' default, 's3')."""
    backend = config.VPS_STORE_BACKEND
    if backend == "s3":
        return S3RecordStore()
    if backend not in ("", "file"):
        logger.warning("[WARNING] Unknown VPS_STORE_BACKEND %r; falling back to file store", backend)
    return FileRecordStore()
