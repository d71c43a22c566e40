"""Machine lifecycle states and the transitions that move between them."""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

import structlog

from .effectors import MachineAction, MachineEffector, NoopEffector
from .errors import MachineConflictError, MachineError, MachineInternalError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from .registry import Machine, MachineRegistry

LOGGER = structlog.get_logger(__name__)


class MachineState(str, Enum):
    STOPPED = "stopped"
    STARTED = "started"

    @classmethod
    def default(cls) -> "MachineState":
        """State of a machine that has never recorded a transition."""
        return cls.STOPPED


class MachineStateMachine:
    """Applies lifecycle transitions through the registry's state rows.

    ``start`` is guarded against double starts. ``stop`` and ``reboot`` may be
    issued from any state. State is recorded before the effector runs and is
    kept even if the effector then fails.
    """

    def __init__(self, registry: "MachineRegistry", effector: MachineEffector | None = None) -> None:
        self.registry = registry
        self.effector = effector or NoopEffector()

    def state_of(self, machine: "Machine") -> MachineState:
        return self.registry.get_state(machine.id)

    def start(self, machine: "Machine") -> str:
        current = self.state_of(machine)
        if current is MachineState.STARTED:
            raise MachineConflictError(machine.id)
        if not self.registry.compare_and_set_state(machine, current, MachineState.STARTED):
            # Another caller moved the row between our read and write.
            raise MachineConflictError(machine.id)
        self._log_transition(machine, MachineAction.START, current, MachineState.STARTED)
        return self._run(MachineAction.START, machine)

    def stop(self, machine: "Machine") -> str:
        current = self._force(machine, MachineState.STOPPED)
        self._log_transition(machine, MachineAction.STOP, current, MachineState.STOPPED)
        return self._run(MachineAction.STOP, machine)

    def reboot(self, machine: "Machine") -> str:
        current = self.state_of(machine)
        self._log_transition(machine, MachineAction.REBOOT, current, current)
        return self._run(MachineAction.REBOOT, machine)

    def apply(self, action: MachineAction, machine: "Machine") -> str:
        handler = {
            MachineAction.START: self.start,
            MachineAction.STOP: self.stop,
            MachineAction.REBOOT: self.reboot,
        }[MachineAction(action)]
        return handler(machine)

    # ------------------------------------------------------------------
    def _force(self, machine: "Machine", target: MachineState) -> MachineState:
        while True:
            current = self.state_of(machine)
            if current is target or self.registry.compare_and_set_state(machine, current, target):
                return current

    def _run(self, action: MachineAction, machine: "Machine") -> str:
        try:
            return self.effector.execute(action, machine)
        except MachineError:
            raise
        except Exception as exc:
            LOGGER.error(
                "machine_effector_failed",
                action=action.value,
                machine_id=machine.id,
                cluster_id=machine.cluster_id,
                error=str(exc),
            )
            raise MachineInternalError(f"Failed to {action.value} machine: {exc}") from exc

    @staticmethod
    def _log_transition(
        machine: "Machine",
        action: MachineAction,
        from_state: MachineState,
        to_state: MachineState,
    ) -> None:
        LOGGER.info(
            "machine_transition",
            action=action.value,
            machine_id=machine.id,
            cluster_id=machine.cluster_id,
            from_state=from_state.value,
            to_state=to_state.value,
        )


__all__ = ["MachineState", "MachineStateMachine"]
