"""
Controller-side handle for a sandbox child process.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from sandbox.messages import BaseMessage, Message, decode, encode
from sandbox.protocol import CHILD_TEMPLATE, DEFAULT_ENGINE

logger = logging.getLogger(__name__)

MessageCallback = Callable[[int, Message], None]
LostCallback = Callable[[int, str], None]

# Largest capped output is far below this even with JSON escaping.
STREAM_LIMIT = 16 * 1024 * 1024


class SandboxTransportError(ConnectionError):
    """The channel to the sandbox process is gone."""


class SandboxHandle(Protocol):
    generation: int

    async def start(self) -> None: ...

    def send(self, message: BaseMessage) -> None: ...

    def kill(self) -> None: ...

    async def wait_closed(self) -> None: ...


SandboxFactory = Callable[[int, MessageCallback, LostCallback], SandboxHandle]


class SubprocessSandbox:
    """
    Run the sandbox child in a separate interpreter process.

    Every decoded message is forwarded to ``on_message`` tagged with the
    generation this handle was created for. End of stream, a malformed frame
    or an oversized frame is reported once through ``on_lost``. Nothing is
    reported after ``kill()``.

    On Unix platforms an optional address-space limit is applied via
    resource.setrlimit. On Windows it is ignored.
    """

    def __init__(
        self,
        generation: int,
        on_message: MessageCallback,
        on_lost: LostCallback,
        engine: str = DEFAULT_ENGINE,
        python_executable: str | None = None,
        memory_limit_mb: int | None = None,
    ) -> None:
        self.generation = generation
        self.engine = engine
        self.python_executable = python_executable or sys.executable
        self.memory_limit_mb = memory_limit_mb
        self._on_message = on_message
        self._on_lost = on_lost
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._killed = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    async def start(self) -> None:
        env = os.environ.copy()
        project_root = str(Path(__file__).resolve().parents[1])
        existing_pythonpath = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{project_root}{os.pathsep}{existing_pythonpath}"
            if existing_pythonpath
            else project_root
        )

        process = await asyncio.create_subprocess_exec(
            self.python_executable,
            "-c",
            CHILD_TEMPLATE,
            self.engine,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            env=env,
            limit=STREAM_LIMIT,
            preexec_fn=self._limit_resources() if os.name != "nt" and self.memory_limit_mb else None,
        )
        self._process = process
        if self._killed:
            # kill() arrived while the process was being spawned.
            self._terminate(process)
            return
        logger.debug("Sandbox generation %d started (pid %d)", self.generation, process.pid)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(process))

    def send(self, message: BaseMessage) -> None:
        process = self._process
        if self._killed or process is None or process.stdin is None:
            raise SandboxTransportError("Sandbox is not running")
        try:
            process.stdin.write(encode(message))
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise SandboxTransportError(str(exc)) from exc

    def kill(self) -> None:
        """Destroy the process without waiting for it. Safe to call repeatedly.

        Await ``wait_closed()`` afterwards to reap the process.
        """
        if self._killed:
            return
        self._killed = True
        if self._reader is not None:
            _ = self._reader.cancel()
        if self._process is not None:
            self._terminate(self._process)

    def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        logger.debug("Sandbox generation %d killed", self.generation)

    async def wait_closed(self, timeout_s: float = 5.0) -> None:
        """Reap a killed process and release its pipes."""
        process = self._process
        if process is None:
            return
        reader = self._reader
        if reader is not None:
            _ = await asyncio.gather(reader, return_exceptions=True)
        try:
            await asyncio.wait_for(self._drain(process), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Sandbox generation %d (pid %d) was not reaped in time", self.generation, process.pid)

    async def _drain(self, process: asyncio.subprocess.Process) -> None:
        # The transport closes once stdout hits EOF and the exit status is in.
        if process.stdin is not None:
            process.stdin.close()
        if process.stdout is not None:
            _ = await process.stdout.read()
        _ = await process.wait()

    async def _read_loop(self, process: asyncio.subprocess.Process) -> None:
        stdout = process.stdout
        assert stdout is not None
        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                self._lost("Oversized frame from sandbox")
                return
            if not line:
                break
            if not line.strip():
                continue
            try:
                message = decode(line)
            except (ValidationError, UnicodeDecodeError) as exc:
                self._lost(f"Malformed frame from sandbox: {exc.__class__.__name__}")
                return
            self._on_message(self.generation, message)
            if self._killed:
                return
        returncode = await process.wait()
        self._lost(f"Sandbox exited unexpectedly (exit code {returncode})")

    def _lost(self, reason: str) -> None:
        if self._killed:
            return
        logger.warning("Sandbox generation %d lost: %s", self.generation, reason)
        self._on_lost(self.generation, reason)

    def _limit_resources(self):
        """Return a preexec_fn to enforce the memory limit on Unix."""
        memory_limit_mb = self.memory_limit_mb

        def _apply_limits():
            try:
                import resource
            except ImportError:
                return
            memory_bytes = int((memory_limit_mb or 0) * 1024 * 1024)
            if hasattr(resource, "RLIMIT_AS"):
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            elif hasattr(resource, "RLIMIT_DATA"):
                resource.setrlimit(resource.RLIMIT_DATA, (memory_bytes, memory_bytes))

        return _apply_limits
