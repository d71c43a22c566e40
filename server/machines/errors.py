"""Error taxonomy for machine registry and lifecycle operations."""
from __future__ import annotations


class MachineError(Exception):
    """Base class for machine domain failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MachineNotFoundError(MachineError, KeyError):
    """Raised when a machine is absent from the addressed cluster."""

    def __init__(self, cluster_id: str, machine_id: str) -> None:
        super().__init__(f"Machine '{machine_id}' was not found in cluster '{cluster_id}'")
        self.cluster_id = cluster_id
        self.machine_id = machine_id


class MachineConflictError(MachineError):
    """Raised when a lifecycle transition is not allowed from the current state."""

    def __init__(self, machine_id: str, message: str = "Machine is already started.") -> None:
        super().__init__(message)
        self.machine_id = machine_id


class MachineValidationError(MachineError, ValueError):
    """Raised when create/update input has the wrong shape."""


class MachineInternalError(MachineError):
    """Raised when the registry or an effector fails unexpectedly."""


__all__ = [
    "MachineConflictError",
    "MachineError",
    "MachineInternalError",
    "MachineNotFoundError",
    "MachineValidationError",
]
