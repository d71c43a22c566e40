"""Cluster-scoped machine records and their lifecycle state rows."""
from __future__ import annotations

import json
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import structlog

from .errors import MachineInternalError, MachineNotFoundError, MachineValidationError
from .lifecycle import MachineState
from .tags import TagSet, add_tag, remove_tag

LOGGER = structlog.get_logger(__name__)

UPDATABLE_FIELDS = ("name", "ip_address", "instance_type")


@dataclass
class Machine:
    id: str
    cluster_id: str
    name: str
    ip_address: str
    instance_type: str
    tags: TagSet = field(default_factory=TagSet)

    def copy(self) -> "Machine":
        return Machine(
            id=self.id,
            cluster_id=self.cluster_id,
            name=self.name,
            ip_address=self.ip_address,
            instance_type=self.instance_type,
            tags=self.tags.copy(),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "cluster_id": self.cluster_id,
            "name": self.name,
            "ip_address": self.ip_address,
            "instance_type": self.instance_type,
            "tags": self.tags.to_list(),
        }


def _require_text(field_name: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MachineValidationError(f"'{field_name}' must be a non-empty string")
    return value


class MachineRegistry(ABC):
    """Storage interface for machines and their lifecycle rows.

    Every lookup is scoped by cluster: a machine id alone is never enough.
    """

    @abstractmethod
    def list(self, cluster_id: str) -> List[Machine]:
        """All machines of the cluster, in insertion order."""

    @abstractmethod
    def create(
        self,
        cluster_id: str,
        name: str,
        ip_address: str,
        instance_type: str,
        tags: Optional[Iterable[str]] = None,
    ) -> Machine:
        """Register a new machine; tags default to the empty set."""

    @abstractmethod
    def get(self, cluster_id: str, machine_id: str) -> Machine:
        """Return a detached copy of the machine."""

    @abstractmethod
    def update(self, cluster_id: str, machine_id: str, **fields: Optional[str]) -> Machine:
        """Partial update; ``None`` keeps the stored value."""

    @abstractmethod
    def add_tag(self, cluster_id: str, machine_id: str, tag: str) -> Tuple[Machine, bool]:
        """Add ``tag`` atomically; the flag is False when it was already present."""

    @abstractmethod
    def remove_tag(self, cluster_id: str, machine_id: str, tag: str) -> Tuple[Machine, bool]:
        """Remove ``tag`` atomically; the flag is False when it was absent."""

    @abstractmethod
    def delete(self, cluster_id: str, machine_id: str) -> None:
        """Drop the machine and its lifecycle row."""

    @abstractmethod
    def get_state(self, machine_id: str) -> MachineState:
        """Recorded state, or the default when no row exists."""

    @abstractmethod
    def compare_and_set_state(
        self, machine: Machine, expected: MachineState, new: MachineState
    ) -> bool:
        """Atomically move the state row from ``expected`` to ``new``."""


class InMemoryMachineRegistry(MachineRegistry):
    """Dict-backed registry guarded by a single re-entrant lock.

    Stored ``Machine`` objects are never mutated in place; a change swaps in
    a new object so a failed ``_changed`` hook can restore the previous dicts.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._machines: Dict[str, Machine] = {}
        self._states: Dict[str, MachineState] = {}

    # ------------------------------------------------------------------
    def _lookup(self, cluster_id: str, machine_id: str) -> Machine:
        machine = self._machines.get(machine_id)
        if machine is None or machine.cluster_id != cluster_id:
            raise MachineNotFoundError(cluster_id, machine_id)
        return machine

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        """Apply a change under the lock; roll it back if ``_changed`` fails."""
        with self._lock:
            machines, states = dict(self._machines), dict(self._states)
            try:
                yield
                self._changed()
            except Exception:
                self._machines, self._states = machines, states
                raise

    def _changed(self) -> None:
        """Hook invoked after every mutation while the lock is held."""

    def _retag(self, cluster_id: str, machine_id: str, tag: str, add: bool) -> Tuple[Machine, bool]:
        with self._lock:
            updated = self._lookup(cluster_id, machine_id).copy()
            changed = add_tag(updated, tag) if add else remove_tag(updated, tag)
            if changed:
                with self._mutation():
                    self._machines[machine_id] = updated
            return updated.copy(), changed

    # ------------------------------------------------------------------
    def list(self, cluster_id: str) -> List[Machine]:
        with self._lock:
            return [m.copy() for m in self._machines.values() if m.cluster_id == cluster_id]

    def create(
        self,
        cluster_id: str,
        name: str,
        ip_address: str,
        instance_type: str,
        tags: Optional[Iterable[str]] = None,
    ) -> Machine:
        machine = Machine(
            id=uuid.uuid4().hex,
            cluster_id=_require_text("cluster_id", cluster_id),
            name=_require_text("name", name),
            ip_address=_require_text("ip_address", ip_address),
            instance_type=_require_text("instance_type", instance_type),
            tags=TagSet(tags),
        )
        with self._mutation():
            self._machines[machine.id] = machine
        LOGGER.info("machine_created", machine_id=machine.id, cluster_id=cluster_id)
        return machine.copy()

    def get(self, cluster_id: str, machine_id: str) -> Machine:
        with self._lock:
            return self._lookup(cluster_id, machine_id).copy()

    def update(self, cluster_id: str, machine_id: str, **fields: Optional[str]) -> Machine:
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise MachineValidationError(f"Cannot update field(s): {', '.join(unknown)}")
        changes = {
            key: _require_text(key, value) for key, value in fields.items() if value is not None
        }
        with self._lock:
            updated = self._lookup(cluster_id, machine_id).copy()
            for key, value in changes.items():
                setattr(updated, key, value)
            with self._mutation():
                self._machines[machine_id] = updated
            return updated.copy()

    def add_tag(self, cluster_id: str, machine_id: str, tag: str) -> Tuple[Machine, bool]:
        return self._retag(cluster_id, machine_id, tag, add=True)

    def remove_tag(self, cluster_id: str, machine_id: str, tag: str) -> Tuple[Machine, bool]:
        return self._retag(cluster_id, machine_id, tag, add=False)

    def delete(self, cluster_id: str, machine_id: str) -> None:
        with self._lock:
            self._lookup(cluster_id, machine_id)
            with self._mutation():
                del self._machines[machine_id]
                self._states.pop(machine_id, None)
        LOGGER.info("machine_deleted", machine_id=machine_id, cluster_id=cluster_id)

    def get_state(self, machine_id: str) -> MachineState:
        with self._lock:
            return self._states.get(machine_id, MachineState.default())

    def compare_and_set_state(
        self, machine: Machine, expected: MachineState, new: MachineState
    ) -> bool:
        with self._lock:
            self._lookup(machine.cluster_id, machine.id)
            current = self._states.get(machine.id, MachineState.default())
            if current is not expected:
                return False
            with self._mutation():
                self._states[machine.id] = new
            return True


class JsonFileMachineRegistry(InMemoryMachineRegistry):
    """In-memory registry that mirrors its contents into a JSON document."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise MachineInternalError(f"Unable to read machine store '{self.path}': {exc}") from exc
        for entry in data.get("machines", []):
            machine = Machine(
                id=str(entry["id"]),
                cluster_id=str(entry["cluster_id"]),
                name=entry["name"],
                ip_address=entry["ip_address"],
                instance_type=entry["instance_type"],
                tags=TagSet(entry.get("tags") or []),
            )
            self._machines[machine.id] = machine
        for machine_id, state in (data.get("states") or {}).items():
            if machine_id in self._machines:
                self._states[machine_id] = MachineState(state)
        LOGGER.info("machine_store_loaded", path=str(self.path), machines=len(self._machines))

    def _changed(self) -> None:
        payload = {
            "machines": [m.to_dict() for m in self._machines.values()],
            "states": {key: state.value for key, state in self._states.items()},
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2))
            tmp_path.replace(self.path)
        except OSError as exc:
            raise MachineInternalError(f"Unable to write machine store '{self.path}': {exc}") from exc


__all__ = [
    "InMemoryMachineRegistry",
    "JsonFileMachineRegistry",
    "Machine",
    "MachineRegistry",
    "UPDATABLE_FIELDS",
]
