"""Tests for the cooperative pipeline deadline."""

from __future__ import annotations

import pytest

from stagediff.engine.deadline import Deadline
from stagediff.exceptions import PipelineTimeoutError


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestDeadline:
    def test_unbounded_never_expires(self) -> None:
        d = Deadline.unbounded()
        assert d.remaining() is None
        assert not d.expired()
        d.check()

    def test_remaining_counts_down(self) -> None:
        clock = FakeClock()
        d = Deadline(10.0, clock=clock)
        clock.now += 4.0
        assert d.remaining() == pytest.approx(6.0)

    def test_remaining_never_negative(self) -> None:
        clock = FakeClock()
        d = Deadline(1.0, clock=clock)
        clock.now += 5.0
        assert d.remaining() == 0.0

    def test_check_raises_once_expired(self) -> None:
        clock = FakeClock()
        d = Deadline(2.5, clock=clock)
        d.check()
        clock.now += 2.5
        assert d.expired()
        with pytest.raises(PipelineTimeoutError) as exc_info:
            d.check()
        assert exc_info.value.timeout == 2.5
        assert "2.5s" in str(exc_info.value)
