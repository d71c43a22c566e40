"""Cluster machine registry, lifecycle and bulk action utilities."""
from __future__ import annotations

from .dispatch import ActionDispatcher, ActionResult, ActionStatus, parse_action
from .effectors import MachineAction, MachineEffector, NoopEffector
from .errors import (
    MachineConflictError,
    MachineError,
    MachineInternalError,
    MachineNotFoundError,
    MachineValidationError,
)
from .lifecycle import MachineState, MachineStateMachine
from .registry import (
    InMemoryMachineRegistry,
    JsonFileMachineRegistry,
    Machine,
    MachineRegistry,
)
from .tags import TagSet, add_tag, matches, remove_tag

__all__ = [
    "ActionDispatcher",
    "ActionResult",
    "ActionStatus",
    "InMemoryMachineRegistry",
    "JsonFileMachineRegistry",
    "Machine",
    "MachineAction",
    "MachineConflictError",
    "MachineEffector",
    "MachineError",
    "MachineInternalError",
    "MachineNotFoundError",
    "MachineRegistry",
    "MachineState",
    "MachineStateMachine",
    "MachineValidationError",
    "NoopEffector",
    "TagSet",
    "add_tag",
    "matches",
    "parse_action",
    "remove_tag",
]
