from __future__ import annotations

import os
import sys
from pathlib import Path

import importlib

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Every test request comes from the same client address.
os.environ.setdefault("RATE_LIMIT_REQUESTS", "100000")

from server.machines import (  # noqa: E402
    ActionDispatcher,
    InMemoryMachineRegistry,
    MachineStateMachine,
)


def _load_app():
    module = importlib.import_module("server.main")
    return module.app


class RecordingEffector:
    """Effector double that records calls and fails for selected machine names."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.calls = []

    def execute(self, action, machine):
        self.calls.append((action.value, machine.id))
        if machine.name in self.fail_names:
            raise RuntimeError(f"{action.value} command failed for {machine.name}")
        return f"{action.value} ok"


@pytest.fixture()
def registry() -> InMemoryMachineRegistry:
    return InMemoryMachineRegistry()


@pytest.fixture()
def effector() -> RecordingEffector:
    return RecordingEffector()


@pytest.fixture()
def state_machine(registry, effector) -> MachineStateMachine:
    return MachineStateMachine(registry, effector)


@pytest.fixture()
def dispatcher(registry, state_machine) -> ActionDispatcher:
    return ActionDispatcher(registry, state_machine, max_workers=4)


@pytest.fixture()
def client() -> TestClient:
    app = _load_app()
    services = importlib.import_module("server.services")
    services.reset_services()
    return TestClient(app)


@pytest.fixture()
def failing_effector() -> RecordingEffector:
    """Effector that fails for machines named ``bad`` or ``broken``."""
    return RecordingEffector(fail_names={"bad", "broken"})
