"""Bulk actions against the tag-selected machines of a cluster."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List

import structlog

from server.observability import record_machine_action

from .effectors import MachineAction
from .errors import MachineConflictError
from .lifecycle import MachineStateMachine
from .registry import Machine, MachineRegistry
from .tags import matches

LOGGER = structlog.get_logger(__name__)

INVALID_ACTION_MESSAGE = "Invalid action."
ALREADY_STARTED_MESSAGE = "already started"


class ActionStatus(str, Enum):
    SUCCESS = "Success"
    ERROR = "Error"


@dataclass(frozen=True)
class ActionResult:
    machine_id: str
    status: ActionStatus
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"machineId": self.machine_id, "status": self.status.value, "message": self.message}


def parse_action(value: object) -> MachineAction | None:
    """Return the action named by ``value`` or None if it is not one."""
    try:
        return MachineAction(value)
    except (TypeError, ValueError):
        return None


class ActionDispatcher:
    """Applies one action to every machine in a cluster matching a tag selector.

    Candidates are resolved up front; resolution errors propagate. Each
    candidate then runs on its own worker and every failure is folded into an
    ``ActionResult`` so the batch always reports one result per candidate,
    in candidate order.
    """

    def __init__(
        self,
        registry: MachineRegistry,
        state_machine: MachineStateMachine,
        max_workers: int = 8,
    ) -> None:
        self.registry = registry
        self.state_machine = state_machine
        self.max_workers = max(1, int(max_workers))

    def candidates(self, cluster_id: str, required_tags: Iterable[str] | None) -> List[Machine]:
        required = list(required_tags or [])
        return [machine for machine in self.registry.list(cluster_id) if matches(machine, required)]

    def dispatch(
        self, cluster_id: str, action: object, required_tags: Iterable[str] | None = None
    ) -> List[ActionResult]:
        machines = self.candidates(cluster_id, required_tags)
        parsed = parse_action(action)
        LOGGER.info(
            "dispatch_started",
            cluster_id=cluster_id,
            action=str(action),
            candidates=len(machines),
        )
        if not machines:
            return []
        if parsed is None:
            results = [
                ActionResult(machine.id, ActionStatus.ERROR, INVALID_ACTION_MESSAGE)
                for machine in machines
            ]
        else:
            workers = min(self.max_workers, len(machines))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="machine-action") as pool:
                results = list(pool.map(lambda m: self._apply_one(parsed, m), machines))

        label = parsed.value if parsed is not None else "invalid"
        for result in results:
            record_machine_action(label, result.status.value)
        LOGGER.info(
            "dispatch_finished",
            cluster_id=cluster_id,
            action=label,
            succeeded=sum(1 for r in results if r.status is ActionStatus.SUCCESS),
            failed=sum(1 for r in results if r.status is ActionStatus.ERROR),
        )
        return results

    def _apply_one(self, action: MachineAction, machine: Machine) -> ActionResult:
        try:
            message = self.state_machine.apply(action, machine)
        except MachineConflictError:
            return ActionResult(machine.id, ActionStatus.ERROR, ALREADY_STARTED_MESSAGE)
        except Exception as exc:
            LOGGER.warning(
                "dispatch_machine_failed",
                action=action.value,
                machine_id=machine.id,
                cluster_id=machine.cluster_id,
                error=str(exc),
            )
            return ActionResult(machine.id, ActionStatus.ERROR, str(exc))
        return ActionResult(machine.id, ActionStatus.SUCCESS, message)


__all__ = [
    "ALREADY_STARTED_MESSAGE",
    "ActionDispatcher",
    "ActionResult",
    "ActionStatus",
    "INVALID_ACTION_MESSAGE",
    "parse_action",
]
