from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import time

from .errors import DeadlineExceeded

T = TypeVar("T")


class Deadline:
    """Cancellation scope passed explicitly through every suspension point

    A deadline is an absolute point on a monotonic clock. Child deadlines never
    outlive their parent, so a per-expert timeout is always bounded by the
    deadline of the whole request.
    """

    def __init__(
        self,
        expires_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, timeout: Optional[float], clock: Callable[[], float] = time.monotonic) -> "Deadline":
        """Create a deadline `timeout` seconds from now (unbounded when None)"""

        if timeout is None:
            return cls(None, clock)
        return cls(clock() + max(0.0, timeout), clock)

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded"""

        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def child(self, timeout: Optional[float] = None) -> "Deadline":
        """Derive a nested deadline bounded by this one"""

        if timeout is None:
            return Deadline(self.expires_at, self._clock)

        candidate = self._clock() + max(0.0, timeout)
        if self.expires_at is not None:
            candidate = min(candidate, self.expires_at)
        return Deadline(candidate, self._clock)

    async def run(self, awaitable: Awaitable[T], collaborator: str) -> T:
        """Await `awaitable` under this deadline, raising DeadlineExceeded on expiry"""

        remaining = self.remaining()
        if remaining is None:
            return await awaitable

        if remaining <= 0.0:
            # Close the coroutine so it is not reported as never awaited
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise DeadlineExceeded(collaborator)

        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError:
            raise DeadlineExceeded(collaborator, remaining) from None

    def __repr__(self) -> str:
        remaining = self.remaining()
        if remaining is None:
            return "Deadline(unbounded)"
        return f"Deadline(remaining={remaining:.3f}s)"


def ensure_deadline(deadline: Optional[Deadline]) -> Deadline:
    """Treat a missing deadline as unbounded"""
    return deadline if deadline is not None else Deadline.unbounded()
