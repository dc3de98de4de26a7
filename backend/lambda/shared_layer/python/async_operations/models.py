"""async_operations.models — AsyncOperation record and ECS launch results."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from async_operations.serialization import _epoch_ms_to_datetime

__all__ = [
    "AsyncOperation",
    "AsyncOperationStatus",
    "Failed",
    "LaunchResult",
    "Launched",
    "OPERATION_TYPES",
]


class AsyncOperationStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


OPERATION_TYPES = frozenset(
    {
        "Bulk Granules",
        "Bulk Granule Delete",
        "Bulk Granule Reingest",
        "Data Migration",
        "Dead-Letter Processing",
        "ES Index",
        "Kinesis Replay",
        "Migration Count Report",
        "Reconciliation Report",
        "SQS Replay",
    }
)


@dataclass(frozen=True)
class AsyncOperation:
    """One tracked async operation.

    ``to_item`` gives the camelCase DynamoDB shape and ``to_row`` the
    snake_case PostgreSQL row; both carry the same values.
    """

    id: str
    status: AsyncOperationStatus
    task_arn: str
    description: str
    operation_type: str
    created_at: int
    updated_at: int
    output: Optional[Any] = None

    def to_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "taskArn": self.task_arn,
            "description": self.description,
            "operationType": self.operation_type,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.output is not None:
            item["output"] = self.output
        return item

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "task_arn": self.task_arn,
            "description": self.description,
            "operation_type": self.operation_type,
            "output": self.output,
            "created_at": _epoch_ms_to_datetime(self.created_at),
            "updated_at": _epoch_ms_to_datetime(self.updated_at),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "AsyncOperation":
        return cls(
            id=str(item["id"]),
            status=AsyncOperationStatus(item["status"]),
            task_arn=item.get("taskArn") or "",
            description=item.get("description") or "",
            operation_type=item.get("operationType") or "",
            created_at=int(item.get("createdAt") or 0),
            updated_at=int(item.get("updatedAt") or 0),
            output=item.get("output"),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AsyncOperation":
        return cls(
            id=str(row["id"]),
            status=AsyncOperationStatus(row["status"]),
            task_arn=row.get("task_arn") or "",
            description=row.get("description") or "",
            operation_type=row.get("operation_type") or "",
            created_at=_datetime_to_epoch_ms(row.get("created_at")),
            updated_at=_datetime_to_epoch_ms(row.get("updated_at")),
            output=row.get("output"),
        )


def _datetime_to_epoch_ms(value: Optional[dt.datetime]) -> int:
    if value is None:
        return 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return int(round(value.timestamp() * 1000))


# ---------------------------------------------------------------------------
# Launch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Launched:
    task_arn: str


@dataclass(frozen=True)
class Failed:
    reason: str
    arn: Optional[str] = None


LaunchResult = Union[Launched, Failed]
