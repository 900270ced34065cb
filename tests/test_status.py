import asyncio
import time

import pytest

from playground.errors import InvalidTransitionError
from playground.status import Status, StatusMachine
from playground.watchdog import Watchdog


# --- Status Tests ---


def test_status_labels() -> None:
    assert Status.LOADING.label == "Loading Python…"
    assert Status.READY.label == "Ready"
    assert Status.RUNNING.label == "Running…"
    assert Status.ERROR.label == "Failed to load Python"


def test_machine_follows_allowed_path_and_notifies() -> None:
    machine = StatusMachine()
    seen = []
    machine.subscribe(seen.append)

    for target in (Status.LOADING, Status.READY, Status.RUNNING, Status.READY, Status.RUNNING, Status.LOADING, Status.ERROR):
        machine.transition(target)

    assert machine.status is Status.ERROR
    assert seen == [
        Status.LOADING,
        Status.READY,
        Status.RUNNING,
        Status.READY,
        Status.RUNNING,
        Status.LOADING,
        Status.ERROR,
    ]


def test_machine_rejects_illegal_transitions() -> None:
    machine = StatusMachine()

    with pytest.raises(InvalidTransitionError):
        machine.transition(Status.READY)

    machine.transition(Status.LOADING)
    with pytest.raises(InvalidTransitionError):
        machine.transition(Status.RUNNING)

    machine.transition(Status.ERROR)
    with pytest.raises(InvalidTransitionError):
        machine.transition(Status.READY)


def test_unsubscribed_listener_is_not_called() -> None:
    machine = StatusMachine()
    seen = []
    machine.subscribe(seen.append)
    machine.unsubscribe(seen.append)

    machine.transition(Status.LOADING)

    assert seen == []


def test_failing_listener_does_not_block_others() -> None:
    machine = StatusMachine()
    seen = []

    def broken(_status):
        raise RuntimeError("listener bug")

    machine.subscribe(broken)
    machine.subscribe(seen.append)
    machine.transition(Status.LOADING)

    assert seen == [Status.LOADING]


# --- Watchdog Tests ---


def test_watchdog_fires_once_after_timeout() -> None:
    async def scenario():
        fired = []
        watchdog = Watchdog(0.05, lambda: fired.append(time.perf_counter()))
        start = time.perf_counter()
        watchdog.arm()
        watchdog.arm()
        await asyncio.sleep(0.2)
        return fired, start, watchdog

    fired, start, watchdog = asyncio.run(scenario())

    assert len(fired) == 1
    assert fired[0] - start >= 0.04
    assert watchdog.expired is True
    assert watchdog.armed is False


def test_disarmed_watchdog_never_fires() -> None:
    async def scenario():
        fired = []
        watchdog = Watchdog(0.05, lambda: fired.append(True))
        watchdog.arm()
        watchdog.disarm()
        await asyncio.sleep(0.15)
        return fired, watchdog

    fired, watchdog = asyncio.run(scenario())

    assert fired == []
    assert watchdog.expired is False
