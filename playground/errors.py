"""Exceptions raised by the session layer."""

from __future__ import annotations


class PlaygroundError(Exception):
    """Base class for session errors."""


class BootstrapFailure(PlaygroundError):
    """The sandbox could not load its interpreter engine."""


class SessionNotReadyError(PlaygroundError):
    """A run was submitted while the session was not Ready."""


class EmptyCodeError(PlaygroundError, ValueError):
    def __init__(self, message: str = "Please write some code first!") -> None:
        super().__init__(message)


class NoRunInProgressError(PlaygroundError):
    """cancel() was called with no outstanding run."""


class InvalidTransitionError(PlaygroundError):
    pass
