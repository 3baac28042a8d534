"""Single-slot debounce timer.

Every ``schedule()`` cancels the pending fire and starts the settle window
again, so a burst of edits produces exactly one callback once the burst
has been quiet for ``delay`` seconds. The callback reads whatever state is
current when it fires.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class FlushScheduler:
    """Debounced single-callback scheduler on the running event loop.

    Outside a running loop, ``schedule()`` only marks the slot pending; the
    callback then runs on ``fire_now()``.
    """

    def __init__(self, delay: float, callback: Callable[[], object]) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def schedule(self) -> None:
        """(Re)start the settle window."""
        self._cancel_timer()
        self._pending = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> bool:
        """Drop the pending fire. Returns whether one was pending."""
        was_pending = self._pending
        self._cancel_timer()
        self._pending = False
        return was_pending

    def fire_now(self) -> bool:
        """Run the pending callback immediately. Returns whether it ran."""
        if not self.cancel():
            return False
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._pending = False
        self._callback()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
