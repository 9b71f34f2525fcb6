"""Cancellation and deadline signal shared by every phase of a run."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .errors import InstallerError


@dataclass(slots=True)
class RunContext:
    """Carries the caller's cancellation flag and optional absolute deadline.

    The deadline is expressed on the :func:`time.monotonic` clock.
    """

    deadline: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "RunContext":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Return the seconds left before the deadline, or ``None`` if unbounded."""

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def timeout_for(self, requested: Optional[float]) -> Optional[float]:
        """Clamp a per-call *requested* timeout to the remaining deadline."""

        remaining = self.remaining()
        if remaining is None:
            return requested
        if requested is None:
            return remaining
        return min(requested, remaining)

    def check(self, operation: str) -> Optional[InstallerError]:
        """Return an error if *operation* must not start because the run is over."""

        if self.cancelled:
            return InstallerError.internal(f"{operation} cancelled before start")
        if self.expired:
            return InstallerError.internal(f"deadline exceeded before {operation}")
        return None


__all__ = ["RunContext"]
