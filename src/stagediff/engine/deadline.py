"""Cooperative wall-clock deadline shared by every stage of an analysis."""

from __future__ import annotations

import time
from typing import Callable

from stagediff.exceptions import PipelineTimeoutError


class Deadline:
    """A wall-clock budget that long-running walks poll via ``check()``.

    Args:
        timeout: Budget in seconds, or None for no limit.
        clock: Monotonic clock; injectable for tests.
    """

    def __init__(
        self,
        timeout: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    @classmethod
    def unbounded(cls) -> Deadline:
        return cls(None)

    def remaining(self) -> float | None:
        """Seconds left (never negative), or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self) -> None:
        """Raise PipelineTimeoutError once the budget is spent."""
        if self.expired():
            raise PipelineTimeoutError(self.timeout or 0.0)
