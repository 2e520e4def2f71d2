"""
Cooperative stage deadlines.

A Deadline is started when a stage begins and passed into every network
boundary of that stage. Callers clamp their own per-call timeouts to what is
left, and an expired deadline stops the next call before it is issued.
"""

import time
from typing import Callable, Optional

from .errors import StageTimeout


class Deadline:
    """Wall-clock budget for one stage (routing or synthesis)."""

    def __init__(self, seconds: float, stage: str, clock: Callable[[], float] = time.monotonic):
        self.seconds = float(seconds)
        self.stage = stage
        self._clock = clock
        self._expires_at = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self) -> None:
        if self.expired:
            raise StageTimeout(stage=self.stage, timeout_sec=self.seconds)

    def clamp(self, timeout_sec: Optional[float]) -> float:
        """Return ``timeout_sec`` cut down to the remaining time.

        Raises StageTimeout when nothing is left.
        """
        self.check()
        remaining = self.remaining()
        if timeout_sec is None:
            return remaining
        return min(float(timeout_sec), remaining)
