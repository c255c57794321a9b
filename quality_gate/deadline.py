"""Run deadline threaded through every collaborator call."""

from __future__ import annotations

import time
from typing import Callable, Optional

from quality_gate.errors import DeadlineExceeded


class Deadline:
    """A point in monotonic time after which collaborator calls must stop.

    ``remaining()`` feeds client-side timeouts (``anthropic`` per-request
    ``timeout=``, ``requests`` ``timeout=``); ``check()`` is called before
    each call so an expired run aborts instead of starting more work.
    """

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def none(cls) -> Deadline:
        return cls(None)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def remaining(self, cap: Optional[float] = None) -> Optional[float]:
        """Seconds left, optionally capped. ``None`` means unbounded."""
        if self._expires_at is None:
            return cap
        left = max(0.0, self._expires_at - self._clock())
        return left if cap is None else min(left, cap)

    def check(self, stage: Optional[str] = None) -> None:
        if self.expired:
            raise DeadlineExceeded("run deadline exceeded", stage=stage)

    def timeout(self, stage: Optional[str] = None, cap: Optional[float] = None) -> Optional[float]:
        """Client timeout for the next call. Raises once no time is left."""
        left = self.remaining(cap=cap)
        if left is not None and left <= 0:
            raise DeadlineExceeded("run deadline exceeded", stage=stage)
        return left
