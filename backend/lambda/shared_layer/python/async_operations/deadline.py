"""async_operations.deadline — Caller time budget for one launch."""

from __future__ import annotations

import time
from typing import Callable, Optional

__all__ = ["Deadline"]


class Deadline:
    """Remaining time for an invocation. Unbounded when ``timeout_seconds`` is None."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
        start: Optional[float] = None,
    ) -> None:
        self._monotonic = monotonic
        if timeout_seconds is None:
            self._expires_at: Optional[float] = None
        else:
            self._expires_at = (monotonic() if start is None else start) + timeout_seconds

    @property
    def bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> Optional[float]:
        """Seconds left, never negative; None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0
