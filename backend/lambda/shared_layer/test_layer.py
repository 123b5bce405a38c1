"""test_layer.py — Unit tests for vps_shared layer modules.

Run from the repository root:
    python3 -m pytest backend/lambda/shared_layer -v
"""

from __future__ import annotations

import hashlib
import hmac
import io
import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

# Ensure the layer's python/ directory is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "python"))

from botocore.exceptions import ClientError

from vps_shared import config
from vps_shared.callback_secret import derive_callback_secret, verify_callback_secret
from vps_shared.http_utils import _error, _header, _json_body, _ok, _path_method
from vps_shared.records import (
    MAX_LOG_ENTRIES,
    append_log,
    infer_status,
    is_valid_remote_link,
    mask_token,
    sanitize_record,
    sort_records,
)
from vps_shared.serialization import _now_z, _parse_timestamp
from vps_shared.store import FileRecordStore, S3RecordStore, get_record_store


class CallbackSecretTests(unittest.TestCase):
    def test_matches_hmac_sha256_hex(self):
        expected = hmac.new(b"test-salt", b"acme/vps-1", hashlib.sha256).hexdigest()
        self.assertEqual(derive_callback_secret("acme/vps-1", salt="test-salt"), expected)

    def test_is_stable_and_lowercase_hex(self):
        first = derive_callback_secret("acme/vps-1", salt="test-salt")
        second = derive_callback_secret("acme/vps-1", salt="test-salt")
        self.assertEqual(first, second)
        self.assertEqual(len(first), 64)
        self.assertEqual(first, first.lower())
        int(first, 16)

    def test_distinct_ids_and_salts_differ(self):
        a = derive_callback_secret("acme/vps-1", salt="test-salt")
        b = derive_callback_secret("acme/vps-2", salt="test-salt")
        c = derive_callback_secret("acme/vps-1", salt="other-salt")
        self.assertNotEqual(a, b)
        self.assertNotEqual(a, c)

    def test_uses_configured_salt_by_default(self):
        with patch.object(config, "CALLBACK_SALT", "configured-salt"):
            self.assertEqual(
                derive_callback_secret("acme/vps-1"),
                derive_callback_secret("acme/vps-1", salt="configured-salt"),
            )

    def test_verify_requires_exact_match(self):
        secret = derive_callback_secret("acme/vps-1", salt="s")
        self.assertTrue(verify_callback_secret("acme/vps-1", secret, salt="s"))
        self.assertFalse(verify_callback_secret("acme/vps-1", secret.upper(), salt="s"))
        self.assertFalse(verify_callback_secret("acme/vps-1", secret + " ", salt="s"))
        self.assertFalse(verify_callback_secret("acme/vps-1", "", salt="s"))
        self.assertFalse(verify_callback_secret("acme/vps-1", None, salt="s"))


class RecordRuleTests(unittest.TestCase):
    def test_append_log_keeps_newest_entries(self):
        record = {"repo": "acme/vps-1"}
        for i in range(MAX_LOG_ENTRIES + 5):
            append_log(record, f"msg-{i}", "2026-01-01T00:00:00Z")
        self.assertEqual(len(record["logs"]), MAX_LOG_ENTRIES)
        self.assertEqual(record["logs"][0]["message"], "msg-5")
        self.assertEqual(record["logs"][-1]["message"], f"msg-{MAX_LOG_ENTRIES + 4}")

    def test_append_log_ignores_empty_message(self):
        record = {"repo": "acme/vps-1"}
        append_log(record, "")
        self.assertNotIn("logs", record)

    def test_append_log_stamps_entry(self):
        record = append_log({}, "hello", "2026-01-01T00:00:00Z")
        self.assertEqual(record["logs"], [{"message": "hello", "at": "2026-01-01T00:00:00Z"}])

    def test_infer_status_precedence(self):
        self.assertEqual(infer_status("creating", "provisioning", False), "provisioning")
        self.assertEqual(infer_status("provisioning", "error", True), "error")
        self.assertEqual(infer_status("provisioning", None, True), "ready")
        self.assertEqual(infer_status("provisioning", None, False), "provisioning")
        self.assertEqual(infer_status(None, None, False), "creating")
        self.assertEqual(infer_status("rebooting", None, False), "rebooting")

    def test_infer_status_log_keeps_prior(self):
        self.assertEqual(infer_status("provisioning", "log", False), "provisioning")
        self.assertEqual(infer_status("error", "log", False), "error")
        self.assertEqual(infer_status("provisioning", "log", True), "provisioning")
        self.assertEqual(infer_status(None, "log", False), "creating")

    def test_remote_link_validation(self):
        self.assertTrue(is_valid_remote_link("https://x.trycloudflare.com/vnc.html"))
        self.assertTrue(is_valid_remote_link("HTTP://10.0.0.1:6080"))
        self.assertFalse(is_valid_remote_link("ftp://x.example.com"))
        self.assertFalse(is_valid_remote_link("x.trycloudflare.com/vnc.html"))
        self.assertFalse(is_valid_remote_link("https://"))
        self.assertFalse(is_valid_remote_link(""))
        self.assertFalse(is_valid_remote_link(42))

    def test_mask_token(self):
        self.assertEqual(mask_token("ghp_1234567890abcdef"), "ghp_12…cdef")
        self.assertEqual(mask_token("short"), "sho***")
        self.assertEqual(mask_token(""), "***")
        self.assertNotIn("1234567890", mask_token("ghp_1234567890abcdef"))

    def test_sanitize_strips_secret(self):
        record = {"repo": "acme/vps-1", "status": "ready", "callback_secret": "abc"}
        out = sanitize_record(record)
        self.assertNotIn("callback_secret", out)
        self.assertIn("callback_secret", record)

    def test_sort_newest_first_missing_last(self):
        records = [
            {"repo": "a", "updated_at": "2026-01-01T00:00:00Z"},
            {"repo": "b"},
            {"repo": "c", "updated_at": "2026-03-01T00:00:00.123Z"},
            {"repo": "d", "updated_at": "not-a-date"},
            {"repo": "e", "updated_at": "2026-02-01T00:00:00+00:00"},
        ]
        ordered = [r["repo"] for r in sort_records(records)]
        self.assertEqual(ordered[:3], ["c", "e", "a"])
        self.assertEqual(set(ordered[3:]), {"b", "d"})


class SerializationTests(unittest.TestCase):
    def test_now_z_round_trips(self):
        stamp = _now_z()
        self.assertTrue(stamp.endswith("Z"))
        self.assertIsNotNone(_parse_timestamp(stamp))

    def test_parse_timestamp_rejects_garbage(self):
        self.assertIsNone(_parse_timestamp(None))
        self.assertIsNone(_parse_timestamp(""))
        self.assertIsNone(_parse_timestamp("yesterday"))

    def test_public_names_resolve(self):
        from vps_shared import records, serialization

        for name in records.__all__:
            self.assertTrue(hasattr(records, name), name)
        self.assertNotIn("PROVISIONING", records.__all__)
        self.assertFalse(hasattr(serialization, "_unix_now"))


class FileRecordStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "vpsuser.json")
        self.store = FileRecordStore(self.path)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_loads_empty(self):
        self.assertEqual(self.store.load(), {})

    def test_save_then_load(self):
        records = {"acme/vps-1": {"repo": "acme/vps-1", "status": "creating"}}
        self.assertTrue(self.store.save(records))
        self.assertEqual(self.store.load(), records)
        with open(self.path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), records)

    def test_empty_file_loads_empty(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("   \n")
        self.assertEqual(self.store.load(), {})

    def test_corrupt_file_loads_empty(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertLogs("vps_shared.store", level="WARNING"):
            self.assertEqual(self.store.load(), {})

    def test_non_object_payload_loads_empty(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("[1, 2, 3]")
        self.assertEqual(self.store.load(), {})

    def test_save_failure_is_logged_not_raised(self):
        store = FileRecordStore(os.path.join(self._tmp.name, "missing-dir", "vpsuser.json"))
        with self.assertLogs("vps_shared.store", level="ERROR"):
            self.assertFalse(store.save({"a": {"repo": "a"}}))


class _FakeBody:
    def __init__(self, payload: bytes):
        self._buf = io.BytesIO(payload)

    def read(self):
        return self._buf.read()


class _FakeS3:
    def __init__(self, objects=None, fail_put=False):
        self.objects = dict(objects or {})
        self.fail_put = fail_put

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": _FakeBody(self.objects[(Bucket, Key)])}

    def put_object(self, Bucket, Key, Body, **_kwargs):
        if self.fail_put:
            raise ClientError({"Error": {"Code": "ServiceUnavailable", "Message": "down"}}, "PutObject")
        self.objects[(Bucket, Key)] = Body


class S3RecordStoreTests(unittest.TestCase):
    def test_missing_key_loads_empty(self):
        with patch("vps_shared.store._get_s3", return_value=_FakeS3()):
            self.assertEqual(S3RecordStore("bucket", "vps/vpsuser.json").load(), {})

    def test_save_then_load(self):
        fake = _FakeS3()
        records = {"acme/vps-1": {"repo": "acme/vps-1", "status": "ready"}}
        with patch("vps_shared.store._get_s3", return_value=fake):
            store = S3RecordStore("bucket", "vps/vpsuser.json")
            self.assertTrue(store.save(records))
            self.assertEqual(store.load(), records)
        self.assertIn(("bucket", "vps/vpsuser.json"), fake.objects)

    def test_put_failure_returns_false(self):
        with patch("vps_shared.store._get_s3", return_value=_FakeS3(fail_put=True)):
            self.assertFalse(S3RecordStore("bucket", "k").save({}))

    def test_access_denied_loads_empty(self):
        class _DeniedS3(_FakeS3):
            def get_object(self, Bucket, Key):
                raise ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetObject")

        with patch("vps_shared.store._get_s3", return_value=_DeniedS3()):
            self.assertEqual(S3RecordStore("bucket", "k").load(), {})

    def test_missing_bucket_degrades(self):
        store = S3RecordStore("", "k")
        self.assertEqual(store.load(), {})
        self.assertFalse(store.save({}))


class StoreFactoryTests(unittest.TestCase):
    def test_default_is_file_store(self):
        with patch.object(config, "VPS_STORE_BACKEND", "file"):
            store = get_record_store()
        self.assertIsInstance(store, FileRecordStore)
        self.assertEqual(store.path, config.VPS_STORE_PATH)

    def test_s3_backend(self):
        with patch.object(config, "VPS_STORE_BACKEND", "s3"), patch.object(config, "VPS_STORE_BUCKET", "b"):
            store = get_record_store()
        self.assertIsInstance(store, S3RecordStore)
        self.assertEqual(store.bucket, "b")

    def test_unknown_backend_falls_back_to_file(self):
        with patch.object(config, "VPS_STORE_BACKEND", "redis"):
            self.assertIsInstance(get_record_store(), FileRecordStore)


class HttpUtilsTests(unittest.TestCase):
    def test_ok_envelope(self):
        resp = _ok(removed=2)
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(json.loads(resp["body"]), {"status": "success", "removed": 2})
        self.assertIn("Access-Control-Allow-Origin", resp["headers"])

    def test_error_envelope(self):
        resp = _error(403, "Invalid callback secret")
        self.assertEqual(resp["statusCode"], 403)
        self.assertEqual(json.loads(resp["body"])["error"], "Invalid callback secret")

    def test_json_body_base64(self):
        import base64

        raw = base64.b64encode(b'{"repo": "acme/vps-1"}').decode()
        self.assertEqual(_json_body({"body": raw, "isBase64Encoded": True}), {"repo": "acme/vps-1"})

    def test_json_body_rejects_non_object(self):
        with self.assertRaises(ValueError):
            _json_body({"body": "[1]"})
        with self.assertRaises(ValueError):
            _json_body({"body": "{oops"})
        self.assertEqual(_json_body({"body": None}), {})

    def test_path_method_v2_and_v1(self):
        self.assertEqual(
            _path_method({"requestContext": {"http": {"method": "post", "path": "/api/vpsuser"}}}),
            ("POST", "/api/vpsuser"),
        )
        self.assertEqual(_path_method({"httpMethod": "DELETE", "path": "/x"}), ("DELETE", "/x"))

    def test_header_lookup_is_case_insensitive(self):
        event = {"headers": {"x-vps-operator-key": "k1"}}
        self.assertEqual(_header(event, "X-Vps-Operator-Key"), "k1")
        self.assertEqual(_header({}, "X-Vps-Operator-Key"), "")


if __name__ == "__main__":
    unittest.main()
