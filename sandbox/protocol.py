"""
Child process protocol for the execution sandbox.

The child reads one JSON message per line from its private copy of stdin and
writes replies to its private copy of stdout. File descriptors 0 and 1 are
pointed at the null device so user code can neither read protocol frames nor
write into the channel.
"""

from __future__ import annotations

import importlib
import os
import sys
from typing import TextIO

from pydantic import ValidationError

from sandbox.capper import cap_output
from sandbox.interpreter import Interpreter
from sandbox.messages import (
    BaseMessage,
    FatalMessage,
    InitMessage,
    ReadyMessage,
    ResultMessage,
    RunMessage,
    decode,
)

CHILD_TEMPLATE = """
from sandbox.protocol import child_main
child_main()
""".strip()

DEFAULT_ENGINE = "sandbox.interpreter:PythonInterpreter"


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


def load_engine(path: str) -> Interpreter:
    """Import and instantiate an engine given as ``"package.module:Factory"``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Engine must be given as 'module:attr', got {path!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    engine = factory()
    if not callable(getattr(engine, "execute", None)):
        raise TypeError(f"Engine {path!r} has no execute() method")
    return engine


class SandboxChild:
    """Message handler for one sandbox process. Loads its engine lazily."""

    def __init__(self, channel: TextIO, engine_path: str = DEFAULT_ENGINE) -> None:
        self.channel = channel
        self.engine_path = engine_path
        self.engine: Interpreter | None = None

    def send(self, message: BaseMessage) -> None:
        _ = self.channel.write(message.to_json() + "\n")
        self.channel.flush()

    def _ensure_engine(self) -> Interpreter:
        if self.engine is None:
            self.engine = load_engine(self.engine_path)
        return self.engine

    def handle(self, message: BaseMessage) -> bool:
        """Process one message. Returns False once the sandbox is unusable."""
        if isinstance(message, InitMessage):
            try:
                _ = self._ensure_engine()
            except Exception as exc:  # noqa: BLE001 - reported as fatal
                self.send(FatalMessage(error=_format_error(exc)))
                return False
            self.send(ReadyMessage())
            return True

        if isinstance(message, RunMessage):
            try:
                engine = self._ensure_engine()
                result = engine.execute(message.code)
            except Exception as exc:  # noqa: BLE001 - harness failure, not user code
                self.send(FatalMessage(error=_format_error(exc)))
                return False
            capped = cap_output([result.stdout, result.stderr], message.cap_bytes)
            self.send(
                ResultMessage(
                    ok=bool(result.ok),
                    output=capped.output,
                    truncated=capped.truncated,
                    generation=message.generation,
                )
            )
            return True

        self.send(FatalMessage(error=f"Unexpected message type: {message.type}"))
        return False

    def serve(self, incoming: TextIO) -> int:
        for raw in incoming:
            if not raw.strip():
                continue
            try:
                message = decode(raw)
            except ValidationError as exc:
                self.send(FatalMessage(error=f"Malformed message: {exc.error_count()} error(s)"))
                return 1
            if not self.handle(message):
                return 1
        return 0


def _reserve_channel() -> tuple[TextIO, TextIO]:
    """Move the protocol pipes off fds 0/1 and replace them with the null device."""
    sys.stdout.flush()
    in_fd = os.dup(0)
    out_fd = os.dup(1)
    null_fd = os.open(os.devnull, os.O_RDWR)
    os.dup2(null_fd, 0)
    os.dup2(null_fd, 1)
    os.close(null_fd)
    incoming = os.fdopen(in_fd, "r", encoding="utf-8")
    outgoing = os.fdopen(out_fd, "w", encoding="utf-8")
    return incoming, outgoing


def child_main() -> None:
    """Entry point for the sandbox child process."""
    engine_path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_ENGINE
    incoming, outgoing = _reserve_channel()
    child = SandboxChild(outgoing, engine_path)
    sys.exit(child.serve(incoming))


if __name__ == "__main__":
    child_main()
