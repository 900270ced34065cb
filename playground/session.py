"""
Session controller.

A Session owns one sandbox process at a time, the generation counter that
identifies it, and at most one outstanding run. Everything here runs on a
single asyncio event loop; sandbox messages arrive as synchronous callbacks
on that loop, so session state needs no locking.

Timeouts, user cancellation and sandbox crashes all end the same way: the
caller gets its outcome immediately, the sandbox process is killed without
waiting, the generation is bumped and a replacement is bootstrapped in the
background. Anything the old process still manages to send carries the old
generation and is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from sandbox.executor import (
    LostCallback,
    MessageCallback,
    SandboxFactory,
    SandboxHandle,
    SandboxTransportError,
    SubprocessSandbox,
)
from sandbox.messages import FatalMessage, InitMessage, Message, ReadyMessage, ResultMessage, RunMessage

from .config import PlaygroundConfig
from .errors import BootstrapFailure, EmptyCodeError, NoRunInProgressError, PlaygroundError, SessionNotReadyError
from .schemas import RunOutcome, RunRequest
from .status import Status, StatusListener, StatusMachine
from .watchdog import Watchdog

logger = logging.getLogger(__name__)


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


@dataclass
class _PendingRun:
    request: RunRequest
    future: asyncio.Future[RunOutcome]
    watchdog: Watchdog
    started: float

    def runtime_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


class Session:
    """Run untrusted snippets one at a time in a restartable sandbox."""

    def __init__(
        self,
        config: PlaygroundConfig | None = None,
        sandbox_factory: SandboxFactory | None = None,
    ) -> None:
        self.config = config or PlaygroundConfig()
        self._factory: SandboxFactory = sandbox_factory or self._subprocess_sandbox
        self._machine = StatusMachine()
        self._generation = 0
        self._sandbox: SandboxHandle | None = None
        self._boot: asyncio.Task[Status] | None = None
        self._ready_waiter: asyncio.Future[None] | None = None
        self._pending: _PendingRun | None = None
        self._retiring: set[asyncio.Task[None]] = set()
        self._closed = False
        self.last_error: str | None = None

    def _subprocess_sandbox(
        self,
        generation: int,
        on_message: MessageCallback,
        on_lost: LostCallback,
    ) -> SandboxHandle:
        return SubprocessSandbox(
            generation,
            on_message,
            on_lost,
            engine=self.config.engine,
            python_executable=self.config.python_executable,
            memory_limit_mb=self.config.memory_limit_mb,
        )

    @property
    def status(self) -> Status | None:
        return self._machine.status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def sandbox(self) -> SandboxHandle | None:
        return self._sandbox

    @property
    def busy(self) -> bool:
        return self._pending is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StatusListener) -> None:
        self._machine.subscribe(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        self._machine.unsubscribe(listener)

    async def __aenter__(self) -> Session:
        _ = await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Lifecycle ---

    async def initialize(self) -> Status:
        """Bring the session to Ready, or to Error if the sandbox cannot load.

        Does nothing while Ready or Running. While Loading, waits for the
        bootstrap already in flight instead of starting another.
        """
        if self._closed:
            raise PlaygroundError("Session is closed")
        status = self.status
        if status in (Status.READY, Status.RUNNING):
            return status
        if status is not Status.LOADING or self._boot is None:
            self._spawn()
        while True:
            boot = self._boot
            assert boot is not None
            status = await asyncio.shield(boot)
            # A crash during bootstrap replaces the boot task; follow it.
            if boot is self._boot or self._closed:
                return status

    async def close(self) -> None:
        """Kill and reap the sandbox, settling any outstanding run as cancelled."""
        if self._closed:
            return
        self._closed = True
        pending = self._pending
        if pending is not None:
            self._settle(RunOutcome.cancelled_by_user(pending.request, pending.runtime_ms()))
        sandbox = self._sandbox
        self._sandbox = None
        if sandbox is not None:
            sandbox.kill()
        boot = self._boot
        if boot is not None and not boot.done():
            _ = boot.cancel()
            _ = await asyncio.gather(boot, return_exceptions=True)
        if sandbox is not None:
            await sandbox.wait_closed()
        if self._retiring:
            _ = await asyncio.gather(*self._retiring, return_exceptions=True)
        logger.debug("Session closed at generation %d", self._generation)

    def _spawn(self) -> None:
        self._generation += 1
        generation = self._generation
        self._machine.transition(Status.LOADING)
        sandbox = self._factory(generation, self._on_message, self._on_lost)
        self._sandbox = sandbox
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        self._ready_waiter = waiter
        self._boot = loop.create_task(self._bootstrap(sandbox, generation, waiter))
        logger.debug("Bootstrapping sandbox generation %d", generation)

    async def _bootstrap(
        self,
        sandbox: SandboxHandle,
        generation: int,
        waiter: asyncio.Future[None],
    ) -> Status:
        error: str | None = None
        try:
            await sandbox.start()
            sandbox.send(InitMessage())
            await asyncio.wait_for(waiter, timeout=self.config.load_timeout_s)
        except asyncio.TimeoutError:
            error = f"Sandbox did not become ready within {self.config.load_timeout_s:g}s"
        except BootstrapFailure as exc:
            error = str(exc)
        except OSError as exc:
            error = _format_error(exc)

        if self._closed or generation != self._generation:
            # Superseded by a newer sandbox or by close().
            return self._machine.status or Status.LOADING

        self._ready_waiter = None
        if error is None:
            self.last_error = None
            self._machine.transition(Status.READY)
            logger.info("Sandbox generation %d ready", generation)
        else:
            logger.error("Sandbox generation %d failed to load: %s", generation, error)
            self._retire(sandbox)
            self._sandbox = None
            self.last_error = error
            self._machine.transition(Status.ERROR)
        return self._machine.status or Status.ERROR

    def _restart(self) -> None:
        sandbox = self._sandbox
        self._sandbox = None
        if sandbox is not None:
            self._retire(sandbox)
        self._spawn()

    def _retire(self, sandbox: SandboxHandle) -> None:
        """Kill a sandbox now and reap it in the background."""
        sandbox.kill()
        task = asyncio.get_running_loop().create_task(sandbox.wait_closed())
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)

    # --- Runs ---

    async def submit(
        self,
        code: str,
        timeout_ms: int | None = None,
        cap_bytes: int | None = None,
    ) -> RunOutcome:
        """Run ``code`` in the sandbox and return its outcome.

        Exactly one outcome is returned per accepted call: the sandbox's
        result, a timeout, or a cancellation. Nothing is sent to the sandbox
        when the code is blank or the session is not Ready.

        Raises:
            ValueError: If timeout_ms or cap_bytes is not a supported choice
            EmptyCodeError: If code is empty or whitespace
            SessionNotReadyError: If the session status is not Ready
        """
        options = self.config.run_options(timeout_ms, cap_bytes)
        if not code.strip():
            raise EmptyCodeError()
        sandbox = self._sandbox
        if self._closed or self.status is not Status.READY or sandbox is None:
            label = self.status.label if self.status else "Not started"
            raise SessionNotReadyError(f"Session is not ready ({label})")

        request = RunRequest(
            code=code,
            timeout_ms=options.timeout_ms,
            cap_bytes=options.cap_bytes,
            generation=self._generation,
        )
        future: asyncio.Future[RunOutcome] = asyncio.get_running_loop().create_future()
        watchdog = Watchdog(options.timeout_ms / 1000, lambda: self._on_timeout(pending))
        pending = _PendingRun(request, future, watchdog, time.perf_counter())
        self._pending = pending
        self._machine.transition(Status.RUNNING)
        watchdog.arm()

        try:
            sandbox.send(RunMessage(code=code, cap_bytes=request.cap_bytes, generation=request.generation))
        except SandboxTransportError as exc:
            self._sandbox_failed(str(exc))

        try:
            return await future
        except asyncio.CancelledError:
            if self._pending is pending:
                self._settle(RunOutcome.cancelled_by_user(request, pending.runtime_ms()))
                self._restart()
            raise

    def cancel(self) -> RunOutcome:
        """Abort the outstanding run by destroying and rebuilding the sandbox."""
        pending = self._pending
        if pending is None:
            raise NoRunInProgressError("No run in progress")
        outcome = RunOutcome.cancelled_by_user(pending.request, pending.runtime_ms())
        logger.info("Run in generation %d cancelled; restarting sandbox", pending.request.generation)
        self._settle(outcome)
        self._restart()
        return outcome

    def _settle(self, outcome: RunOutcome) -> None:
        pending = self._pending
        if pending is None:
            return
        self._pending = None
        pending.watchdog.disarm()
        if not pending.future.done():
            pending.future.set_result(outcome)

    def _on_timeout(self, pending: _PendingRun) -> None:
        if self._pending is not pending:
            return
        logger.info(
            "Run in generation %d timed out after %d ms; restarting sandbox",
            pending.request.generation,
            pending.request.timeout_ms,
        )
        self._settle(RunOutcome.timeout(pending.request, pending.runtime_ms()))
        self._restart()

    # --- Sandbox callbacks ---

    def _is_current(self, generation: int) -> bool:
        return not self._closed and self._sandbox is not None and generation == self._generation

    def _on_message(self, generation: int, message: Message) -> None:
        if not self._is_current(generation):
            logger.debug(
                "Discarding %s from stale sandbox generation %d (current %d)",
                message.type,
                generation,
                self._generation,
            )
            return

        if isinstance(message, ReadyMessage):
            waiter = self._ready_waiter
            if waiter is not None and not waiter.done():
                waiter.set_result(None)
        elif isinstance(message, FatalMessage):
            self._sandbox_failed(message.error)
        elif isinstance(message, ResultMessage):
            pending = self._pending
            if pending is None or message.generation != pending.request.generation:
                logger.debug("Discarding unexpected result for generation %d", message.generation)
                return
            self._settle(
                RunOutcome(
                    kind="result",
                    ok=message.ok,
                    output=message.output,
                    truncated=message.truncated,
                    generation=message.generation,
                    runtime_ms=pending.runtime_ms(),
                )
            )
            self._machine.transition(Status.READY)
        else:
            logger.warning("Ignoring unexpected %s message from sandbox", message.type)

    def _on_lost(self, generation: int, reason: str) -> None:
        if not self._is_current(generation):
            return
        self._sandbox_failed(reason)

    def _sandbox_failed(self, error: str) -> None:
        waiter = self._ready_waiter
        if waiter is not None:
            if not waiter.done():
                waiter.set_exception(BootstrapFailure(error))
                return
            if waiter.cancelled() or waiter.exception() is not None:
                # The bootstrap in flight is already failing this sandbox.
                return
        pending = self._pending
        if pending is not None:
            self._settle(RunOutcome.worker_error(pending.request, error, pending.runtime_ms()))
        logger.warning("Sandbox generation %d failed: %s; restarting", self._generation, error)
        self._restart()
