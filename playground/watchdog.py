"""Per-run timer that enforces the hard wall-clock timeout."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class Watchdog:
    """
    One-shot timer on the running event loop.

    ``on_expire`` runs at most once, and never after ``disarm()``.
    """

    def __init__(self, timeout_s: float, on_expire: Callable[[], None]) -> None:
        self.timeout_s = timeout_s
        self._on_expire = on_expire
        self._handle: asyncio.TimerHandle | None = None
        self.expired = False

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        if self._handle is not None or self.expired:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_s, self._fire)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.expired = True
        self._on_expire()
