"""Request-scoped deadlines for outbound calls."""

import time
from typing import Optional

from ..errors import DeadlineExceeded


class Deadline:
    """
    Absolute point in time after which a request must stop doing work.

    Every network call made on behalf of an admission request asks the
    deadline for its timeout, so a slow dependency can never keep the
    request alive longer than the caller is willing to wait.
    """

    def __init__(self, seconds: Optional[float] = None):
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def never(cls) -> "Deadline":
        """A deadline that never expires."""
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def timeout(self, limit: float, operation: str = "operation") -> float:
        """
        Timeout for the next call: the per-call limit capped by what is left.

        Raises:
            DeadlineExceeded: if nothing is left
        """
        remaining = self.remaining()
        if remaining is None:
            return limit
        if remaining <= 0:
            raise DeadlineExceeded(f"request deadline exceeded before {operation}")
        return min(limit, remaining)
