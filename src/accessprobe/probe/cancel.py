# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Run-wide cancellation signal with an optional deadline."""

from __future__ import annotations

import threading
import time


class CancelToken:
    """
    Shared stop flag for one probe run.

    ``cancel()`` may be called from any thread or from a signal handler.
    A deadline (seconds from construction) cancels the run implicitly once it
    passes.
    """

    def __init__(self, deadline: float | None = None, event: threading.Event | None = None):
        self._event = event or threading.Event()
        self._deadline_at = time.monotonic() + deadline if deadline is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline_at is not None and time.monotonic() >= self._deadline_at

    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline_at is None:
            return None
        return max(0.0, self._deadline_at - time.monotonic())

    def wait(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds, waking early on cancel; return ``cancelled()``."""
        remaining = self.remaining()
        timeout = delay if remaining is None else min(delay, remaining)
        if timeout > 0:
            self._event.wait(timeout)
        return self.cancelled()


__all__ = ["CancelToken"]
