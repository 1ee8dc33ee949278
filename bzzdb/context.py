# bzzdb/context.py
"""
Cancellation and deadline token passed explicitly to every operation.

Usage:
    ctx = Context(timeout=5.0)
    db.put(b"key", b"value", ctx=ctx)

    # From another thread
    ctx.cancel()
"""

import threading
import time
from typing import Optional

from .errors import ContextCancelledError, DeadlineExceededError


class Context:
    """
    A cancellable operation scope with an optional deadline.

    Args:
        timeout: Seconds from now until the deadline (None for no deadline)
        deadline: Absolute deadline as a time.monotonic() value
    """

    def __init__(self, timeout: Optional[float] = None, deadline: Optional[float] = None):
        if timeout is not None:
            deadline = time.monotonic() + timeout
        self.deadline = deadline
        self._cancelled = threading.Event()

    def cancel(self):
        """Cancel the context. Safe to call from any thread, more than once."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self):
        """Raise if the context is cancelled or past its deadline."""
        if self.cancelled:
            raise ContextCancelledError("context cancelled")
        if self.expired:
            raise DeadlineExceededError("context deadline exceeded")


def background() -> Context:
    """A context that is never cancelled and has no deadline."""
    return Context()
