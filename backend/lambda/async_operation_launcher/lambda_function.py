"""async_operation_launcher/lambda_function.py

Directly-invoked Lambda that starts async operations (bulk granule jobs,
migrations, reconciliation reports, ...) as ECS tasks and returns the RUNNING
AsyncOperation record. Also answers status lookups by id.

Events:
    {"action": "start", "description": ..., "operationType": ...,
     "lambdaName": ..., "payload": ..., "useLambdaEnvironmentVariables": false}
    {"action": "get", "id": ...}

"action" defaults to "start".

Flow (start):
    Invoke
    → Stage payload to s3://SYSTEM_BUCKET/STACK_NAME/async-operation-payloads/<id>.json
    → ECS RunTask (container override "AsyncOperation")
    → Insert RUNNING record into PostgreSQL, then DynamoDB
    → Return record

Environment variables: see async_operations.config. The async_operations
package ships in the shared layer (shared_layer/python).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from async_operations import aws_clients
from async_operations.config import AsyncOperationsConfig
from async_operations.coordinator import AsyncOperationCoordinator
from async_operations.errors import (
    AsyncOperationError,
    InvalidAsyncOperationError,
    PartialRecordWriteError,
    RecordStoreError,
)
from async_operations.persistence import DynamoRecordStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Lazily built collaborators
# ---------------------------------------------------------------------------

_config: Optional[AsyncOperationsConfig] = None
_coordinator: Optional[AsyncOperationCoordinator] = None
_record_store: Optional[DynamoRecordStore] = None


def _get_config() -> AsyncOperationsConfig:
    global _config
    if _config is None:
        _config = AsyncOperationsConfig.from_env()
    return _config


def _get_coordinator() -> AsyncOperationCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = AsyncOperationCoordinator.from_config(_get_config())
    return _coordinator


def _get_record_store() -> DynamoRecordStore:
    global _record_store
    if _record_store is None:
        config = _get_config()
        _record_store = DynamoRecordStore(
            aws_clients._get_ddb(config.region, config.request_timeout_seconds),
            config.dynamo_table_name,
        )
    return _record_store


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _as_timeout(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"timeoutSeconds must be a number, got {value!r}") from exc
    if timeout <= 0:
        raise ValueError("timeoutSeconds must be positive")
    return timeout


def _failure(exc: AsyncOperationError) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "status": "failed",
        "error": type(exc).__name__,
        "message": str(exc),
    }
    if isinstance(exc, RecordStoreError):
        body.update(exc.to_dict())
    return body


def _normalize_event(event: Any) -> Dict[str, Any]:
    if isinstance(event, str):
        event = json.loads(event)
    if not isinstance(event, dict):
        raise ValueError(f"Unsupported event type: {type(event)}")
    return event


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _handle_start(event: Dict[str, Any]) -> Dict[str, Any]:
    for field in ("description", "operationType", "lambdaName"):
        if not event.get(field):
            raise ValueError(f"Missing {field} in event")
    if "payload" not in event:
        raise ValueError("Missing payload in event")

    try:
        record = _get_coordinator().start_async_operation(
            description=event["description"],
            operation_type=event["operationType"],
            lambda_name=event["lambdaName"],
            payload=event["payload"],
            use_lambda_environment_variables=_as_bool(event.get("useLambdaEnvironmentVariables")),
            timeout_seconds=_as_timeout(event.get("timeoutSeconds")),
        )
    except InvalidAsyncOperationError as exc:
        raise ValueError(str(exc)) from exc
    except PartialRecordWriteError as exc:
        logger.error(
            "[ERROR] Async operation %s is running as %s but its record is missing from %s; reconciliation required",
            exc.async_operation_id,
            exc.task_arn,
            ", ".join(exc.failed_stores),
        )
        return _failure(exc)
    except AsyncOperationError as exc:
        logger.error("[ERROR] Async operation launch failed: %s", exc)
        return _failure(exc)

    return {"status": "started", "asyncOperation": record.to_item()}


def _handle_get(event: Dict[str, Any]) -> Dict[str, Any]:
    async_operation_id = event.get("id")
    if not async_operation_id:
        raise ValueError("Missing id in event")
    record = _get_record_store().get(str(async_operation_id))
    if record is None:
        return {"status": "not_found", "id": async_operation_id}
    return {"status": "found", "asyncOperation": record.to_item()}


_ACTIONS = {
    "start": _handle_start,
    "get": _handle_get,
}


def lambda_handler(event, _context):
    event = _normalize_event(event)
    action = event.get("action") or "start"
    handler = _ACTIONS.get(action)
    if handler is None:
        raise ValueError(f"Unknown action {action}")
    return handler(event)
