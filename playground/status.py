"""Session status and its allowed transitions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class Status(str, Enum):
    LOADING = "loading"
    READY = "ready"
    RUNNING = "running"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    Status.LOADING: "Loading Python…",
    Status.READY: "Ready",
    Status.RUNNING: "Running…",
    Status.ERROR: "Failed to load Python",
}

# None is the state before the first initialize().
_TRANSITIONS: dict[Status | None, frozenset[Status]] = {
    None: frozenset({Status.LOADING}),
    Status.LOADING: frozenset({Status.READY, Status.ERROR, Status.LOADING}),
    Status.READY: frozenset({Status.RUNNING, Status.LOADING}),
    Status.RUNNING: frozenset({Status.READY, Status.LOADING}),
    Status.ERROR: frozenset({Status.LOADING}),
}

StatusListener = Callable[[Status], None]


class StatusMachine:
    """Current status plus the listeners that want to hear about changes."""

    def __init__(self) -> None:
        self._status: Status | None = None
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> Status | None:
        return self._status

    def subscribe(self, listener: StatusListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def can_transition(self, target: Status) -> bool:
        return target in _TRANSITIONS[self._status]

    def transition(self, target: Status) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot move from {self._status.value if self._status else 'unstarted'} to {target.value}"
            )
        if target is self._status:
            return
        logger.debug("Status %s -> %s", self._status, target)
        self._status = target
        for listener in list(self._listeners):
            try:
                listener(target)
            except Exception:  # noqa: BLE001
                logger.exception("Status listener %r failed", listener)
