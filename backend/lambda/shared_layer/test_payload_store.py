"""test_payload_store.py — S3 payload staging tests."""

from __future__ import annotations

import io
import json
import os
import sys
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from async_operations.errors import InvalidAsyncOperationError, StorageWriteError
from async_operations.payload_store import PayloadLocation, S3PayloadStore, parse_s3_uri


class PayloadStoreTests(unittest.TestCase):
    def setUp(self):
        self.s3 = MagicMock()
        self.store = S3PayloadStore(self.s3, "cumulus-dev-internal")

    def test_payload_key_layout(self):
        self.assertEqual(
            S3PayloadStore.payload_key("cumulus-dev", "abc-123"),
            "cumulus-dev/async-operation-payloads/abc-123.json",
        )
        self.assertEqual(
            S3PayloadStore.payload_key("/cumulus-dev/", "abc-123"),
            "cumulus-dev/async-operation-payloads/abc-123.json",
        )

    def test_stage_writes_json_and_returns_location(self):
        location = self.store.stage("cumulus-dev", "abc-123", {"x": 1})

        self.assertEqual(location.bucket, "cumulus-dev-internal")
        self.assertEqual(location.key, "cumulus-dev/async-operation-payloads/abc-123.json")
        self.assertEqual(
            location.url,
            "s3://cumulus-dev-internal/cumulus-dev/async-operation-payloads/abc-123.json",
        )
        self.s3.put_object.assert_called_once()
        kwargs = self.s3.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "cumulus-dev-internal")
        self.assertEqual(kwargs["Key"], location.key)
        self.assertEqual(kwargs["ContentType"], "application/json")
        self.assertEqual(json.loads(kwargs["Body"].decode("utf-8")), {"x": 1})

    def test_stage_accepts_arrays(self):
        self.store.stage("cumulus-dev", "abc-123", [{"granuleId": "g1"}, {"granuleId": "g2"}])
        body = self.s3.put_object.call_args.kwargs["Body"]
        self.assertEqual(len(json.loads(body)), 2)

    def test_client_error_raises_storage_write_error(self):
        self.s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
            "PutObject",
        )
        with self.assertRaises(StorageWriteError) as ctx:
            self.store.stage("cumulus-dev", "abc-123", {"x": 1})
        self.assertEqual(ctx.exception.bucket, "cumulus-dev-internal")
        self.assertEqual(ctx.exception.key, "cumulus-dev/async-operation-payloads/abc-123.json")
        self.assertIsInstance(ctx.exception.__cause__, ClientError)

    def test_transport_error_raises_storage_write_error(self):
        self.s3.put_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.amazonaws.com")
        with self.assertRaises(StorageWriteError):
            self.store.stage("cumulus-dev", "abc-123", {"x": 1})

    def test_unserializable_payload_is_rejected_before_write(self):
        with self.assertRaises(InvalidAsyncOperationError):
            self.store.stage("cumulus-dev", "abc-123", {"when": object()})
        with self.assertRaises(InvalidAsyncOperationError):
            self.store.stage("cumulus-dev", "abc-123", {"ratio": float("nan")})
        self.s3.put_object.assert_not_called()

    def test_fetch_reads_staged_payload(self):
        self.s3.get_object.return_value = {"Body": io.BytesIO(b'{"x": 1}')}
        payload = self.store.fetch(PayloadLocation("cumulus-dev-internal", "k.json"))
        self.assertEqual(payload, {"x": 1})
        self.s3.get_object.assert_called_once_with(Bucket="cumulus-dev-internal", Key="k.json")

    def test_fetch_accepts_payload_url(self):
        self.s3.get_object.return_value = {"Body": io.BytesIO(b'[1, 2]')}
        payload = self.store.fetch("s3://cumulus-dev-internal/cumulus-dev/async-operation-payloads/op-1.json")
        self.assertEqual(payload, [1, 2])
        self.s3.get_object.assert_called_once_with(
            Bucket="cumulus-dev-internal",
            Key="cumulus-dev/async-operation-payloads/op-1.json",
        )

    def test_fetch_rejects_malformed_url(self):
        with self.assertRaises(ValueError):
            self.store.fetch("cumulus-dev-internal/op-1.json")
        self.s3.get_object.assert_not_called()

    def test_stage_with_timeout_uses_bounded_client(self):
        factory = MagicMock()
        store = S3PayloadStore(self.s3, "cumulus-dev-internal", client_factory=factory)

        store.stage("cumulus-dev", "abc-123", {"x": 1}, timeout=4.0)

        factory.assert_called_once_with(4.0)
        factory.return_value.put_object.assert_called_once()
        self.s3.put_object.assert_not_called()

    def test_bucket_required(self):
        with self.assertRaises(ValueError):
            S3PayloadStore(self.s3, "")


class ParseS3UriTests(unittest.TestCase):
    def test_round_trips_location_url(self):
        location = PayloadLocation("bucket", "a/b/c.json")
        self.assertEqual(parse_s3_uri(location.url), ("bucket", "a/b/c.json"))

    def test_rejects_invalid_uris(self):
        with self.assertRaises(ValueError):
            parse_s3_uri("https://bucket/key")
        with self.assertRaises(ValueError):
            parse_s3_uri("s3://bucket-only")


if __name__ == "__main__":
    unittest.main()
