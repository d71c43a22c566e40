"""Pluggable executors for the side effects behind machine actions."""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict

import structlog

if TYPE_CHECKING:  # pragma: no cover - hints only
    from .registry import Machine

LOGGER = structlog.get_logger(__name__)


class MachineAction(str, Enum):
    START = "start"
    REBOOT = "reboot"
    STOP = "stop"


SUCCESS_MESSAGES: Dict[MachineAction, str] = {
    MachineAction.START: "Machine started.",
    MachineAction.REBOOT: "Machine rebooted.",
    MachineAction.STOP: "Machine stopped.",
}


class MachineEffector:
    """Runs the real-world command behind an action.

    ``execute`` returns a human readable message on success and raises on
    failure; callers decide how a failure is reported.
    """

    def execute(self, action: MachineAction, machine: "Machine") -> str:
        raise NotImplementedError


class NoopEffector(MachineEffector):
    """Effector that only records the command it would have sent."""

    def execute(self, action: MachineAction, machine: "Machine") -> str:
        try:
            message = SUCCESS_MESSAGES[MachineAction(action)]
        except ValueError as exc:
            raise ValueError(f"Unsupported machine action '{action}'") from exc
        LOGGER.info(
            "machine_command",
            action=MachineAction(action).value,
            machine_id=machine.id,
            cluster_id=machine.cluster_id,
            ip_address=machine.ip_address,
        )
        return message


__all__ = ["MachineAction", "MachineEffector", "NoopEffector", "SUCCESS_MESSAGES"]
