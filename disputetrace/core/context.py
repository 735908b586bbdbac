"""Cancellation contexts threaded through every read and generation call.

A :class:`Context` is cancelled either explicitly via :meth:`Context.cancel`,
when its deadline passes, or when any parent context is cancelled.  Contexts
are cheap to derive and safe to share between threads.
"""

from __future__ import annotations

import threading
import time

from .errors import Cancelled


class Context:
    """Cancellation signal with an optional monotonic deadline."""

    def __init__(self, *, deadline: float | None = None, parent: "Context | None" = None) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> "Context":
        """Return a context that is never cancelled unless asked to."""

        return cls()

    def with_timeout(self, seconds: float) -> "Context":
        """Derive a child context that expires ``seconds`` from now."""

        if seconds < 0:
            raise ValueError("timeout must not be negative")
        return Context(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> "Context":
        """Derive a child context that can be cancelled independently."""

        return Context(parent=self)

    def cancel(self, reason: str = "context cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self.reason() is not None

    def reason(self) -> str | None:
        """Return why the context is done, or ``None`` while it is live."""

        if self._event.is_set():
            return self._reason
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return "context deadline exceeded"
        if self._parent is not None:
            return self._parent.reason()
        return None

    def remaining(self) -> float | None:
        """Seconds until the deadline, or ``None`` when there is none."""

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise :class:`Cancelled` if the context is done."""

        reason = self.reason()
        if reason is not None:
            raise Cancelled(reason)


__all__ = ["Context"]
