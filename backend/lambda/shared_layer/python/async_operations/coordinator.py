"""async_operations.coordinator — Start an async operation end to end.

Flow:
    STAGING    generate id, write the payload to S3
    LAUNCHING  compose the task environment, RunTask on ECS
    RECORDING  write the RUNNING record to PostgreSQL and DynamoDB
    DONE       return the record

Any failure before RECORDING ends in ABORTED with nothing launched. Once the
task is launched it is never cancelled; a record failure is raised as
RecordWriteError or PartialRecordWriteError for reconciliation.

With ``timeout_seconds`` set, every remote call gets the time still left and
the deadline is checked before each step. Running out aborts the step in
flight with that step's error.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Any, Callable, Optional

from async_operations import aws_clients
from async_operations.config import AsyncOperationsConfig
from async_operations.deadline import Deadline
from async_operations.environment import LambdaEnvironmentComposer
from async_operations.errors import (
    AsyncOperationError,
    InvalidAsyncOperationError,
    StorageWriteError,
    TaskLaunchError,
)
from async_operations.models import OPERATION_TYPES, AsyncOperation, AsyncOperationStatus, Failed
from async_operations.payload_store import S3PayloadStore
from async_operations.persistence import (
    DualRecordWriter,
    DynamoRecordStore,
    PostgresRecordStore,
    RecordWriter,
)
from async_operations.serialization import _emit_structured_observability, _now_ms
from async_operations.task_launcher import EcsTaskLauncher

__all__ = [
    "AsyncOperationCoordinator",
    "LaunchState",
    "new_async_operation_id",
]

logger = logging.getLogger(__name__)

_COMPONENT = "async_operations"


class LaunchState(str, Enum):
    STAGING = "STAGING"
    LAUNCHING = "LAUNCHING"
    RECORDING = "RECORDING"
    DONE = "DONE"
    ABORTED = "ABORTED"


def new_async_operation_id() -> str:
    return str(uuid.uuid4())


def _validate_request(description: str, operation_type: str, lambda_name: str) -> None:
    if not description or not str(description).strip():
        raise InvalidAsyncOperationError("description is required")
    if operation_type not in OPERATION_TYPES:
        raise InvalidAsyncOperationError(
            f"Unsupported operationType '{operation_type}'. Expected one of: {', '.join(sorted(OPERATION_TYPES))}"
        )
    if not lambda_name or not str(lambda_name).strip():
        raise InvalidAsyncOperationError("lambdaName is required")


class AsyncOperationCoordinator:
    def __init__(
        self,
        config: AsyncOperationsConfig,
        payload_store: S3PayloadStore,
        composer: LambdaEnvironmentComposer,
        launcher: EcsTaskLauncher,
        record_writer: RecordWriter,
        id_factory: Callable[[], str] = new_async_operation_id,
        clock: Callable[[], int] = _now_ms,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.payload_store = payload_store
        self.composer = composer
        self.launcher = launcher
        self.record_writer = record_writer
        self._id_factory = id_factory
        self._clock = clock
        self._monotonic = monotonic

    @classmethod
    def from_config(cls, config: AsyncOperationsConfig, **kwargs: Any) -> "AsyncOperationCoordinator":
        """Wire boto3 and psycopg backed components from ``config``."""
        region = config.region
        timeout = config.request_timeout_seconds
        relational = PostgresRecordStore(
            config.postgres_conninfo,
            table_name=config.postgres_table_name,
            connect_timeout=timeout,
            statement_timeout_ms=int(timeout * 1000),
        )
        key_value = DynamoRecordStore(
            aws_clients._get_ddb(region, timeout),
            config.dynamo_table_name,
            client_factory=aws_clients._timed_client_factory("dynamodb", region, timeout),
        )
        return cls(
            config,
            payload_store=S3PayloadStore(
                aws_clients._get_s3(region, timeout),
                config.system_bucket,
                client_factory=aws_clients._timed_client_factory("s3", region, timeout),
            ),
            composer=LambdaEnvironmentComposer(
                aws_clients._get_lambda(region, timeout),
                client_factory=aws_clients._timed_client_factory("lambda", region, timeout),
            ),
            launcher=EcsTaskLauncher(
                aws_clients._get_ecs(region, timeout),
                launch_type=config.launch_type,
                container_name=config.container_name,
                client_factory=aws_clients._timed_client_factory("ecs", region, timeout),
            ),
            record_writer=DualRecordWriter(relational, key_value),
            **kwargs,
        )

    def _transition(self, async_operation_id: str, state: LaunchState, started: float, **extra: Any) -> None:
        error_code = extra.pop("error_code", None)
        _emit_structured_observability(
            component=_COMPONENT,
            event="state_transition",
            async_operation_id=async_operation_id,
            state=state.value,
            latency_ms=int((self._monotonic() - started) * 1000),
            error_code=error_code,
            extra=extra or None,
        )

    def start_async_operation(
        self,
        *,
        description: str,
        operation_type: str,
        lambda_name: str,
        payload: Any,
        use_lambda_environment_variables: bool = False,
        timeout_seconds: Optional[float] = None,
    ) -> AsyncOperation:
        """Launch the ECS task for an async operation and record it.

        Returns the created RUNNING record once the task has been launched;
        it does not wait for the task to finish.

        Raises:
            InvalidAsyncOperationError: bad request, nothing done.
            StorageWriteError: payload staging failed, nothing launched.
            ConfigLookupError: function environment lookup failed, nothing launched.
            TaskLaunchError: ECS did not start the task, no record created.
            TaskLaunchError: deadline exceeded before RunTask, nothing launched.
            RecordWriteError: task running, no store holds the record.
            PartialRecordWriteError: task running, the record is in some stores only.
        """
        _validate_request(description, operation_type, lambda_name)

        started = self._monotonic()
        deadline = Deadline(timeout_seconds, self._monotonic, start=started)
        async_operation_id = self._id_factory()
        state = LaunchState.STAGING
        self._transition(async_operation_id, state, started, operation_type=operation_type)

        try:
            if deadline.expired():
                raise StorageWriteError(
                    f"Deadline exceeded before staging async operation {async_operation_id}",
                    bucket=self.payload_store.bucket,
                )
            location = self.payload_store.stage(
                self.config.stack_name,
                async_operation_id,
                payload,
                timeout=deadline.remaining(),
            )

            state = LaunchState.LAUNCHING
            self._transition(async_operation_id, state, started, payload_url=location.url)
            static_vars = self.composer.task_environment(
                async_operation_id,
                self.config.dynamo_table_name,
                lambda_name,
                location.url,
            )
            environment = self.composer.compose(
                static_vars,
                function_name=lambda_name,
                merge_function_environment=use_lambda_environment_variables,
                timeout=deadline.remaining(),
            )
            if deadline.expired():
                raise TaskLaunchError(
                    f"Deadline exceeded before launching async operation {async_operation_id}",
                    reason="DEADLINE_EXCEEDED",
                )
            result = self.launcher.launch(
                self.config.cluster,
                self.config.task_definition,
                environment,
                timeout=deadline.remaining(),
            )
            if isinstance(result, Failed):
                raise TaskLaunchError(
                    f"Failed to start AsyncOperation: {result.reason}",
                    reason=result.reason,
                    arn=result.arn,
                )
        except AsyncOperationError as exc:
            self._transition(
                async_operation_id,
                LaunchState.ABORTED,
                started,
                error_code=type(exc).__name__,
                failed_state=state.value,
            )
            raise

        # The task is running from here on; an exhausted deadline surfaces as a record error.
        state = LaunchState.RECORDING
        self._transition(async_operation_id, state, started, task_arn=result.task_arn)
        now = self._clock()
        record = AsyncOperation(
            id=async_operation_id,
            status=AsyncOperationStatus.RUNNING,
            task_arn=result.task_arn,
            description=description,
            operation_type=operation_type,
            created_at=now,
            updated_at=now,
        )
        try:
            self.record_writer.write(record, deadline=deadline)
        except AsyncOperationError as exc:
            self._transition(
                async_operation_id,
                state,
                started,
                error_code=type(exc).__name__,
                task_arn=result.task_arn,
            )
            raise

        self._transition(async_operation_id, LaunchState.DONE, started, task_arn=result.task_arn)
        return record
