"""
Playground Module

Session layer that runs user snippets in a sandbox process with a hard
timeout, user cancellation and a status stream for the UI.
"""

from .errors import (
    BootstrapFailure,
    EmptyCodeError,
    InvalidTransitionError,
    NoRunInProgressError,
    PlaygroundError,
    SessionNotReadyError,
)
from .schemas import RunOptions, RunOutcome, RunRequest
from .session import Session
from .status import Status

__version__ = "0.1.0"

__all__ = [
    "BootstrapFailure",
    "EmptyCodeError",
    "InvalidTransitionError",
    "NoRunInProgressError",
    "PlaygroundError",
    "RunOptions",
    "RunOutcome",
    "RunRequest",
    "Session",
    "SessionNotReadyError",
    "Status",
]
