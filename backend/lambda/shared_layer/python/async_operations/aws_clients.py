"""async_operations.aws_clients — Lazy-singleton AWS service clients.

Factory functions create boto3 clients on first call and cache them for
subsequent invocations, so warm Lambda invocations reuse connections.

The ECS client is built with retries disabled; RunTask is sent at most once
per launch. When the caller has a deadline, ``_timed_client_factory`` builds a
per-call client whose timeouts are the remaining budget.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import boto3
from botocore.config import Config

from async_operations.config import DEFAULT_REGION, DEFAULT_REQUEST_TIMEOUT_SECONDS

__all__ = [
    "_get_ddb",
    "_get_ecs",
    "_get_lambda",
    "_get_s3",
    "_client_for",
    "_reset_clients",
    "_timed_client_factory",
]

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None
_ecs = None
_lambda = None
_s3 = None


def _client_config(max_attempts: int, timeout: Optional[float]) -> Config:
    timeout = timeout or DEFAULT_REQUEST_TIMEOUT_SECONDS
    return Config(
        retries={"total_max_attempts": max_attempts, "mode": "standard"},
        connect_timeout=timeout,
        read_timeout=timeout,
    )


def _get_ddb(region: Optional[str] = None, timeout: Optional[float] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or DEFAULT_REGION,
            config=_client_config(5, timeout),
        )
    return _ddb


def _get_ecs(region: Optional[str] = None, timeout: Optional[float] = None):
    """Get (or create) the ECS client singleton. Never retries."""
    global _ecs
    if _ecs is None:
        _ecs = boto3.client(
            "ecs",
            region_name=region or DEFAULT_REGION,
            config=_client_config(1, timeout),
        )
    return _ecs


def _get_lambda(region: Optional[str] = None, timeout: Optional[float] = None):
    """Get (or create) the Lambda client singleton."""
    global _lambda
    if _lambda is None:
        _lambda = boto3.client(
            "lambda",
            region_name=region or DEFAULT_REGION,
            config=_client_config(3, timeout),
        )
    return _lambda


def _get_s3(region: Optional[str] = None, timeout: Optional[float] = None):
    """Get (or create) the S3 client singleton."""
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or DEFAULT_REGION,
            config=_client_config(3, timeout),
        )
    return _s3


def _reset_clients() -> None:
    """Drop cached clients (used by tests and after config changes)."""
    global _ddb, _ecs, _lambda, _s3
    _ddb = _ecs = _lambda = _s3 = None


# ---------------------------------------------------------------------------
# Deadline-bounded clients
# ---------------------------------------------------------------------------

_MAX_ATTEMPTS = {"dynamodb": 5, "ecs": 1, "lambda": 3, "s3": 3}
_MIN_CALL_TIMEOUT = 0.1


def _timed_client_factory(
    service: str,
    region: Optional[str] = None,
    cap: Optional[float] = None,
) -> Callable[[float], Any]:
    """Return ``factory(timeout)`` building an uncached client for one call.

    The client's connect/read timeouts are the caller's remaining budget,
    never more than ``cap``.
    """

    def factory(timeout: float):
        if cap is not None:
            timeout = min(timeout, cap)
        return boto3.client(
            service,
            region_name=region or DEFAULT_REGION,
            config=_client_config(_MAX_ATTEMPTS[service], max(timeout, _MIN_CALL_TIMEOUT)),
        )

    return factory


def _client_for(client, factory: Optional[Callable[[float], Any]], timeout: Optional[float]):
    """Pick the client for one call: the cached one, or a deadline-bounded one."""
    if timeout is None or factory is None:
        return client
    return factory(timeout)
