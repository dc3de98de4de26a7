"""async_operations.errors — Failure taxonomy for async operation launches.

Every error raised by the launcher derives from ``AsyncOperationError`` so
callers can catch the family, and each step of the launch has its own type so
callers can tell how far the launch got before it failed.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class AsyncOperationError(RuntimeError):
    """Base class for async operation launch failures."""


class InvalidAsyncOperationError(AsyncOperationError, ValueError):
    """Raised when the caller supplies an unusable operation request."""


class ConfigurationError(AsyncOperationError, ValueError):
    """Raised when required launcher configuration is missing or malformed."""


class StorageWriteError(AsyncOperationError):
    """Raised when the payload could not be staged. Nothing was launched."""

    def __init__(self, message: str, *, bucket: str = "", key: str = "") -> None:
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class ConfigLookupError(AsyncOperationError):
    """Raised when a function's environment could not be resolved."""

    def __init__(self, message: str, *, function_name: str = "") -> None:
        super().__init__(message)
        self.function_name = function_name


class TaskLaunchError(AsyncOperationError):
    """Raised when ECS rejected or logically failed the task launch."""

    def __init__(self, message: str, *, reason: str = "", arn: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.arn = arn


class RecordStoreError(AsyncOperationError):
    """A store write failed after the task was launched.

    The ECS task is running. ``failed_stores`` and ``written_stores`` name the
    stores by their ``name`` attribute so a reconciliation job can repair the
    record for ``async_operation_id``.
    """

    def __init__(
        self,
        message: str,
        *,
        async_operation_id: str,
        task_arn: Optional[str] = None,
        failed_stores: Sequence[str] = (),
        written_stores: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.async_operation_id = async_operation_id
        self.task_arn = task_arn
        self.failed_stores: Tuple[str, ...] = tuple(failed_stores)
        self.written_stores: Tuple[str, ...] = tuple(written_stores)

    def to_dict(self) -> dict:
        return {
            "asyncOperationId": self.async_operation_id,
            "taskArn": self.task_arn,
            "failedStores": list(self.failed_stores),
            "writtenStores": list(self.written_stores),
        }


class RecordWriteError(RecordStoreError):
    """No store holds the record."""


class PartialRecordWriteError(RecordStoreError):
    """Some stores hold the record and others do not."""
