"""async_operations.persistence — AsyncOperation record stores.

Two stores hold a copy of every record: PostgreSQL for relational queries and
DynamoDB for point lookups by id. ``DualRecordWriter`` writes both; the write
is not atomic across the stores, and the error it raises says which stores
hold the record.
"""

from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

import psycopg
from botocore.exceptions import BotoCoreError, ClientError
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from async_operations.aws_clients import _client_for
from async_operations.config import DEFAULT_PG_TABLE
from async_operations.deadline import Deadline
from async_operations.errors import PartialRecordWriteError, RecordWriteError
from async_operations.models import AsyncOperation
from async_operations.serialization import _deserialize, _serialize

__all__ = [
    "DualRecordWriter",
    "DynamoRecordStore",
    "PostgresRecordStore",
    "RecordWriter",
]

logger = logging.getLogger(__name__)


def _bounded(configured, timeout):
    if timeout is None:
        return configured
    if configured is None:
        return timeout
    return min(configured, timeout)


# ---------------------------------------------------------------------------
# DynamoDB
# ---------------------------------------------------------------------------


class DynamoRecordStore:
    name = "dynamodb"
    errors = (BotoCoreError, ClientError)

    def __init__(self, ddb_client, table_name: str, client_factory: Optional[Callable[[float], Any]] = None) -> None:
        self._ddb = ddb_client
        self._client_factory = client_factory
        self.table_name = table_name

    def create(self, record: AsyncOperation, timeout: Optional[float] = None) -> AsyncOperation:
        client = _client_for(self._ddb, self._client_factory, timeout)
        client.put_item(
            TableName=self.table_name,
            Item={k: _serialize(v) for k, v in record.to_item().items()},
            ConditionExpression="attribute_not_exists(id)",
        )
        return record

    def get(self, async_operation_id: str) -> Optional[AsyncOperation]:
        resp = self._ddb.get_item(
            TableName=self.table_name,
            Key={"id": _serialize(async_operation_id)},
            ConsistentRead=True,
        )
        raw = resp.get("Item")
        if not raw:
            return None
        return AsyncOperation.from_item(_deserialize(raw))


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class PostgresRecordStore:
    """Records in a PostgreSQL table, one transaction per write.

    ``connect`` defaults to ``psycopg.connect`` and is injectable for tests.
    """

    name = "postgres"
    errors = (psycopg.Error,)

    def __init__(
        self,
        conninfo: str,
        table_name: str = DEFAULT_PG_TABLE,
        connect_timeout: Optional[float] = None,
        statement_timeout_ms: Optional[int] = None,
        connect: Callable[..., Any] = psycopg.connect,
    ) -> None:
        self.conninfo = conninfo
        self.table_name = table_name
        self.connect_timeout = connect_timeout
        self.statement_timeout_ms = statement_timeout_ms
        self._connect = connect

    def _table(self) -> sql.Identifier:
        return sql.Identifier(*self.table_name.split("."))

    @contextmanager
    def _get_connection(self, connect_timeout: Optional[float] = None):
        connect_timeout = _bounded(self.connect_timeout, connect_timeout)
        kwargs: Dict[str, Any] = {"row_factory": dict_row}
        if connect_timeout:
            # libpq only takes whole seconds, minimum 2
            kwargs["connect_timeout"] = max(2, int(connect_timeout))
        conn = self._connect(self.conninfo, **kwargs)
        try:
            yield conn
        finally:
            conn.close()

    def _apply_statement_timeout(self, cursor, timeout: Optional[float] = None) -> None:
        timeout_ms = _bounded(self.statement_timeout_ms, None if timeout is None else timeout * 1000)
        if timeout_ms:
            cursor.execute(
                "SELECT set_config('statement_timeout', %s, true)",
                (str(max(1, int(timeout_ms))),),
            )

    def create(self, record: AsyncOperation, timeout: Optional[float] = None) -> AsyncOperation:
        """Insert ``record`` and commit. Rolls back on any error.

        ``timeout`` caps both the connect timeout and the statement timeout.
        """
        row = record.to_row()
        if row["output"] is not None:
            row["output"] = Jsonb(row["output"])
        columns = list(row)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            self._table(),
            sql.SQL(", ").join(sql.Identifier(col) for col in columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        with self._get_connection(timeout) as conn:
            with conn.transaction():
                with conn.cursor() as cursor:
                    self._apply_statement_timeout(cursor, timeout)
                    cursor.execute(query, [row[col] for col in columns])
        return record

    def get(self, async_operation_id: str) -> Optional[AsyncOperation]:
        query = sql.SQL("SELECT * FROM {} WHERE id = %s").format(self._table())
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, (async_operation_id,))
                row = cursor.fetchone()
        if not row:
            return None
        return AsyncOperation.from_row(row)


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class RecordWriter(abc.ABC):
    """Persists a newly created AsyncOperation wherever it must live."""

    @abc.abstractmethod
    def write(self, record: AsyncOperation, deadline: Optional[Deadline] = None) -> AsyncOperation:
        raise NotImplementedError


class DualRecordWriter(RecordWriter):
    """Write to the relational store, then the key-value store.

    A relational failure raises RecordWriteError and the key-value store is
    not attempted. A key-value failure of any kind raises
    PartialRecordWriteError and the committed relational row stays in place.
    A DynamoDB failure therefore always leaves a committed PostgreSQL row:
    the two writes are separate transactions, not one nested transaction
    that rolls back together.

    Each store write gets the time left on ``deadline``. Running out before
    the relational write raises RecordWriteError; running out between the
    two writes raises PartialRecordWriteError.
    """

    def __init__(self, relational, key_value) -> None:
        self.relational = relational
        self.key_value = key_value

    def _partial(self, record: AsyncOperation, message: str) -> PartialRecordWriteError:
        logger.error(
            "Async operation %s written to %s but not %s: %s",
            record.id,
            self.relational.name,
            self.key_value.name,
            message,
        )
        return PartialRecordWriteError(
            f"Async operation record {record.id} is missing from {self.key_value.name}: {message}",
            async_operation_id=record.id,
            task_arn=record.task_arn,
            failed_stores=(self.key_value.name,),
            written_stores=(self.relational.name,),
        )

    def write(self, record: AsyncOperation, deadline: Optional[Deadline] = None) -> AsyncOperation:
        deadline = deadline or Deadline()
        if deadline.expired():
            logger.error("Deadline exceeded before async operation %s was recorded", record.id)
            raise RecordWriteError(
                f"Failed to create async operation record {record.id}: deadline exceeded before any write",
                async_operation_id=record.id,
                task_arn=record.task_arn,
                failed_stores=(self.relational.name, self.key_value.name),
            )

        try:
            self.relational.create(record, timeout=deadline.remaining())
        except self.relational.errors as exc:
            logger.error(
                "Failed to write async operation %s to %s: %s",
                record.id,
                self.relational.name,
                exc,
            )
            raise RecordWriteError(
                f"Failed to create async operation record {record.id}: {self.relational.name} write failed: {exc}",
                async_operation_id=record.id,
                task_arn=record.task_arn,
                failed_stores=(self.relational.name,),
            ) from exc

        if deadline.expired():
            raise self._partial(record, "deadline exceeded")

        try:
            self.key_value.create(record, timeout=deadline.remaining())
        except Exception as exc:
            raise self._partial(record, str(exc)) from exc

        return record
