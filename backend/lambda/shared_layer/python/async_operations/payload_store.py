"""async_operations.payload_store — Stage async operation payloads in S3.

The ECS task reads its input from the ``payloadUrl`` it is given, so the
payload has to be in S3 before the task is launched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union

from botocore.exceptions import BotoCoreError, ClientError

from async_operations.aws_clients import _client_for
from async_operations.errors import InvalidAsyncOperationError, StorageWriteError

__all__ = [
    "PAYLOAD_KEY_SEGMENT",
    "PayloadLocation",
    "S3PayloadStore",
    "parse_s3_uri",
]

logger = logging.getLogger(__name__)

PAYLOAD_KEY_SEGMENT = "async-operation-payloads"


@dataclass(frozen=True)
class PayloadLocation:
    bucket: str
    key: str

    @property
    def url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    if not uri.startswith("s3://"):
        raise ValueError(f"Invalid S3 URI: {uri}")
    without_scheme = uri[5:]
    if "/" not in without_scheme:
        raise ValueError(f"S3 URI missing key component: {uri}")
    bucket, key = without_scheme.split("/", 1)
    return bucket, key


def encode_payload(payload: Any) -> bytes:
    try:
        return json.dumps(payload, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise InvalidAsyncOperationError(f"Payload is not JSON-serializable: {exc}") from exc


class S3PayloadStore:
    def __init__(self, s3_client, bucket: str, client_factory: Optional[Callable[[float], Any]] = None) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._s3 = s3_client
        self._client_factory = client_factory
        self.bucket = bucket

    @staticmethod
    def payload_key(location_prefix: str, async_operation_id: str) -> str:
        prefix = location_prefix.strip("/")
        return f"{prefix}/{PAYLOAD_KEY_SEGMENT}/{async_operation_id}.json"

    def stage(
        self,
        location_prefix: str,
        async_operation_id: str,
        payload: Any,
        timeout: Optional[float] = None,
    ) -> PayloadLocation:
        """Write ``payload`` as JSON and return where it landed.

        Raises InvalidAsyncOperationError before touching S3 if the payload
        cannot be encoded, and StorageWriteError if the write fails.
        """
        body = encode_payload(payload)
        location = PayloadLocation(self.bucket, self.payload_key(location_prefix, async_operation_id))
        client = _client_for(self._s3, self._client_factory, timeout)
        try:
            client.put_object(
                Bucket=location.bucket,
                Key=location.key,
                Body=body,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Failed to stage payload at %s: %s", location.url, exc)
            raise StorageWriteError(
                f"Failed to stage async operation payload at {location.url}: {exc}",
                bucket=location.bucket,
                key=location.key,
            ) from exc
        logger.info("[INFO] Staged async operation payload at %s (%d bytes)", location.url, len(body))
        return location

    def fetch(self, location: Union[PayloadLocation, str]) -> Any:
        """Read a staged payload back, by location or by its ``payloadUrl``."""
        if isinstance(location, str):
            location = PayloadLocation(*parse_s3_uri(location))
        body = self._s3.get_object(Bucket=location.bucket, Key=location.key)["Body"].read()
        return json.loads(body.decode("utf-8"))
