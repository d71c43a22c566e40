from __future__ import annotations

import threading

import pytest

from server.machines import (
    MachineConflictError,
    MachineInternalError,
    MachineNotFoundError,
    MachineState,
    MachineStateMachine,
    NoopEffector,
)


def test_default_state_is_stopped(registry, state_machine) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    assert MachineState.default() is MachineState.STOPPED
    assert state_machine.state_of(machine) is MachineState.STOPPED


def test_second_start_conflicts_and_keeps_state(registry, state_machine, effector) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    assert state_machine.start(machine) == "start ok"
    assert state_machine.state_of(machine) is MachineState.STARTED

    with pytest.raises(MachineConflictError) as excinfo:
        state_machine.start(machine)
    assert "already started" in str(excinfo.value)
    assert state_machine.state_of(machine) is MachineState.STARTED
    assert effector.calls == [("start", machine.id)]


def test_stop_and_reboot_are_unguarded(registry, state_machine, effector) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    state_machine.stop(machine)
    state_machine.reboot(machine)
    assert state_machine.state_of(machine) is MachineState.STOPPED

    state_machine.start(machine)
    state_machine.reboot(machine)
    assert state_machine.state_of(machine) is MachineState.STARTED
    state_machine.stop(machine)
    assert state_machine.state_of(machine) is MachineState.STOPPED
    assert [call[0] for call in effector.calls] == ["stop", "reboot", "start", "reboot", "stop"]

    # Stopped again, so a fresh start is allowed.
    state_machine.start(machine)
    assert state_machine.state_of(machine) is MachineState.STARTED


def test_effector_failure_keeps_recorded_state(registry, failing_effector) -> None:
    machine = registry.create("c1", "broken", "10.0.0.1", "t3.small")
    state_machine = MachineStateMachine(registry, failing_effector)
    with pytest.raises(MachineInternalError):
        state_machine.start(machine)
    assert state_machine.state_of(machine) is MachineState.STARTED


def test_start_on_deleted_machine_is_not_found(registry, state_machine) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    registry.delete("c1", machine.id)
    with pytest.raises(MachineNotFoundError):
        state_machine.start(machine)


def test_concurrent_starts_allow_exactly_one_winner(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    state_machine = MachineStateMachine(registry, NoopEffector())
    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def _attempt() -> None:
        barrier.wait()
        try:
            state_machine.start(machine)
            outcome = "ok"
        except MachineConflictError:
            outcome = "conflict"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    assert state_machine.state_of(machine) is MachineState.STARTED
