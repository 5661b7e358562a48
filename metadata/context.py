"""
Request context for the metadata service.
A context carries an optional deadline and a cancel flag down to the
outbound metadata calls so that retries and backoff sleeps stop as soon
as the caller gives up.
"""
import threading
import time

CANCELLED = "cancelled"
DEADLINE_EXCEEDED = "deadline exceeded"


class RequestContext:
    """Cancellable, deadline-bearing execution context."""

    def __init__(self, timeout=None, parent=None):
        self.parent = parent
        self._cancelled = threading.Event()
        self._children = []
        self._lock = threading.Lock()

        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        if parent is not None:
            parent._add_child(self)

    def with_timeout(self, timeout):
        """Derive a child context that expires after `timeout` seconds."""
        return RequestContext(timeout=timeout, parent=self)

    def _add_child(self, child):
        with self._lock:
            self._children.append(child)
            cancelled = self._cancelled.is_set()
        if cancelled:
            child.cancel()

    def cancel(self):
        """Cancel this context and everything derived from it."""
        with self._lock:
            self._cancelled.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    def remaining(self):
        """Seconds until the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def err(self):
        if self._cancelled.is_set():
            return CANCELLED
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DEADLINE_EXCEEDED
        return None

    def done(self):
        return self.err() is not None

    def wait(self, seconds):
        """
        Sleep for up to `seconds`, waking early on cancellation or deadline.

        Returns:
            bool: True if the context finished before the sleep completed.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._cancelled.wait(max(0.0, seconds))
        return self.done()

    def __repr__(self):
        return f"RequestContext(deadline={self.deadline!r}, err={self.err()!r})"
