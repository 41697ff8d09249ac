"""
Clock -- injectable time source.

Services, the run orchestrator and the step handlers never call
``datetime.now()`` directly; they receive a Clock.  Pure engines receive
dates and timestamps as arguments and never see a clock at all.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock.  ``now()`` always returns a timezone-aware datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Production clock: current UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``;
    ``tick()`` advances by ``step_ms`` and returns the new time, which lets
    tests produce distinct, ordered timestamps.
    """

    def __init__(self, fixed_time: datetime | None = None, step_ms: int = 0):
        self._fixed_time = fixed_time or datetime(
            2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)
        self._step = timedelta(milliseconds=step_ms)

    def now(self) -> datetime:
        current = self._fixed_time + self._offset
        self._offset += self._step
        return current

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: float = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        self.advance(1)
        return self._fixed_time + self._offset
