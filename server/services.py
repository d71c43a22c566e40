"""Singleton services shared across FastAPI routers."""
from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace

from server.machines import (
    ActionDispatcher,
    InMemoryMachineRegistry,
    JsonFileMachineRegistry,
    MachineEffector,
    MachineRegistry,
    MachineStateMachine,
    NoopEffector,
)
from server.settings import settings as default_settings


@dataclass
class MachineServices:
    registry: MachineRegistry
    state_machine: MachineStateMachine
    dispatcher: ActionDispatcher


def build_services(
    settings: SimpleNamespace = default_settings,
    effector: MachineEffector | None = None,
) -> MachineServices:
    """Wire a registry, state machine and dispatcher from ``settings``."""
    store_path = getattr(settings, "MACHINE_STORE_PATH", None)
    registry: MachineRegistry
    if store_path:
        registry = JsonFileMachineRegistry(store_path)
    else:
        registry = InMemoryMachineRegistry()
    state_machine = MachineStateMachine(registry, effector or NoopEffector())
    dispatcher = ActionDispatcher(
        registry,
        state_machine,
        max_workers=getattr(settings, "ACTION_MAX_WORKERS", 8),
    )
    return MachineServices(registry=registry, state_machine=state_machine, dispatcher=dispatcher)


SERVICES = build_services()


def reset_services(
    settings: SimpleNamespace = default_settings,
    effector: MachineEffector | None = None,
) -> MachineServices:
    """Rebuild the shared services, dropping all in-memory machines."""
    global SERVICES
    SERVICES = build_services(settings, effector)
    return SERVICES


# FastAPI dependency providers -------------------------------------------------
def get_registry() -> MachineRegistry:
    return SERVICES.registry


def get_state_machine() -> MachineStateMachine:
    return SERVICES.state_machine


def get_dispatcher() -> ActionDispatcher:
    return SERVICES.dispatcher


__all__ = [
    "MachineServices",
    "SERVICES",
    "build_services",
    "get_dispatcher",
    "get_registry",
    "get_state_machine",
    "reset_services",
]
