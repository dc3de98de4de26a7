"""async_operations.config — Launcher configuration.

Configuration is read from the environment once, by the entry point, and then
handed to the coordinator as an ``AsyncOperationsConfig``. Nothing else in the
package reads ``os.environ``.

Environment variables:
    STACK_NAME                              required
    SYSTEM_BUCKET                           required
    ECS_CLUSTER_ARN                         required
    ASYNC_OPERATION_TASK_DEFINITION_ARN     required
    ASYNC_OPERATIONS_TABLE                  required (DynamoDB table)
    DATABASE_URL                            or the PG_* variables below
    PG_HOST / PG_PORT / PG_DATABASE / PG_USER / PG_PASSWORD
    ASYNC_OPERATIONS_PG_TABLE               default: async_operations
    AWS_REGION                              default: us-east-1
    ASYNC_OPERATION_LAUNCH_TYPE             default: EC2
    ASYNC_OPERATION_CONTAINER_NAME          default: AsyncOperation
    REQUEST_TIMEOUT_SECONDS                 default: 30
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from psycopg.conninfo import make_conninfo

from async_operations.errors import ConfigurationError

__all__ = [
    "AsyncOperationsConfig",
    "DEFAULT_CONTAINER_NAME",
    "DEFAULT_LAUNCH_TYPE",
    "DEFAULT_PG_TABLE",
    "DEFAULT_REGION",
    "DEFAULT_REQUEST_TIMEOUT_SECONDS",
]

DEFAULT_REGION = "us-east-1"
DEFAULT_LAUNCH_TYPE = "EC2"
DEFAULT_CONTAINER_NAME = "AsyncOperation"
DEFAULT_PG_TABLE = "async_operations"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0

_REQUIRED_ENV = (
    ("STACK_NAME", "stack_name"),
    ("SYSTEM_BUCKET", "system_bucket"),
    ("ECS_CLUSTER_ARN", "cluster"),
    ("ASYNC_OPERATION_TASK_DEFINITION_ARN", "task_definition"),
    ("ASYNC_OPERATIONS_TABLE", "dynamo_table_name"),
)


@dataclass(frozen=True)
class AsyncOperationsConfig:
    stack_name: str
    system_bucket: str
    cluster: str
    task_definition: str
    dynamo_table_name: str
    postgres_conninfo: str
    postgres_table_name: str = DEFAULT_PG_TABLE
    region: str = DEFAULT_REGION
    launch_type: str = DEFAULT_LAUNCH_TYPE
    container_name: str = DEFAULT_CONTAINER_NAME
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AsyncOperationsConfig":
        """Build a config from ``environ`` (defaults to ``os.environ``).

        Raises ConfigurationError naming every missing required variable.
        """
        env = os.environ if environ is None else environ

        values = {}
        missing = []
        for env_name, field_name in _REQUIRED_ENV:
            raw = (env.get(env_name) or "").strip()
            if not raw:
                missing.append(env_name)
            values[field_name] = raw

        conninfo = _postgres_conninfo(env)
        if not conninfo:
            missing.append("DATABASE_URL or PG_HOST")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        timeout_raw = env.get("REQUEST_TIMEOUT_SECONDS") or str(DEFAULT_REQUEST_TIMEOUT_SECONDS)
        try:
            timeout = float(timeout_raw)
        except ValueError as exc:
            raise ConfigurationError(f"REQUEST_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}") from exc
        if timeout <= 0:
            raise ConfigurationError("REQUEST_TIMEOUT_SECONDS must be positive")

        return cls(
            postgres_conninfo=conninfo,
            postgres_table_name=env.get("ASYNC_OPERATIONS_PG_TABLE") or DEFAULT_PG_TABLE,
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            launch_type=env.get("ASYNC_OPERATION_LAUNCH_TYPE") or DEFAULT_LAUNCH_TYPE,
            container_name=env.get("ASYNC_OPERATION_CONTAINER_NAME") or DEFAULT_CONTAINER_NAME,
            request_timeout_seconds=timeout,
            **values,
        )


def _postgres_conninfo(env: Mapping[str, str]) -> str:
    url = (env.get("DATABASE_URL") or "").strip()
    if url:
        return url
    host = (env.get("PG_HOST") or "").strip()
    if not host:
        return ""
    params = {
        "host": host,
        "port": env.get("PG_PORT") or "5432",
        "dbname": env.get("PG_DATABASE") or "postgres",
        "user": env.get("PG_USER") or "postgres",
    }
    if env.get("PG_PASSWORD"):
        params["password"] = env["PG_PASSWORD"]
    return make_conninfo(**params)
