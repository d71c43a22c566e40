from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from server.machines import (
    InMemoryMachineRegistry,
    JsonFileMachineRegistry,
    MachineInternalError,
    MachineNotFoundError,
    MachineRegistry,
    MachineState,
    MachineValidationError,
    add_tag,
)


def test_create_defaults_tags_to_empty(registry) -> None:
    machine = registry.create("c1", "db-1", "10.0.0.5", "m5.large")
    assert machine.cluster_id == "c1"
    assert machine.tags == set()
    assert registry.get("c1", machine.id).name == "db-1"


def test_list_is_scoped_to_cluster_in_insertion_order(registry) -> None:
    first = registry.create("c1", "a", "10.0.0.1", "t3.small")
    registry.create("c2", "b", "10.0.0.2", "t3.small")
    third = registry.create("c1", "c", "10.0.0.3", "t3.small")
    assert [m.id for m in registry.list("c1")] == [first.id, third.id]
    assert registry.list("unknown") == []


def test_get_requires_matching_cluster(registry) -> None:
    machine = registry.create("B", "a", "10.0.0.1", "t3.small")
    with pytest.raises(MachineNotFoundError):
        registry.get("A", machine.id)
    with pytest.raises(KeyError):
        registry.get("A", machine.id)


def test_update_keeps_omitted_fields(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    updated = registry.update("c1", machine.id, name="renamed", ip_address=None)
    assert updated.name == "renamed"
    assert updated.ip_address == "10.0.0.1"
    assert updated.instance_type == "t3.small"
    assert updated.cluster_id == "c1"


def test_update_rejects_identity_fields(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    with pytest.raises(MachineValidationError):
        registry.update("c1", machine.id, id="other")


def test_update_wrong_cluster_is_not_found(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    with pytest.raises(MachineNotFoundError):
        registry.update("c2", machine.id, name="x")


def test_delete_is_not_idempotent(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    registry.delete("c1", machine.id)
    with pytest.raises(MachineNotFoundError):
        registry.delete("c1", machine.id)
    with pytest.raises(MachineNotFoundError):
        registry.get("c1", machine.id)


def test_delete_drops_state_row(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    assert registry.compare_and_set_state(machine, MachineState.STOPPED, MachineState.STARTED)
    registry.delete("c1", machine.id)
    assert registry.get_state(machine.id) is MachineState.STOPPED


def test_create_rejects_malformed_fields(registry) -> None:
    with pytest.raises(MachineValidationError):
        registry.create("c1", "", "10.0.0.1", "t3.small")
    with pytest.raises(MachineValidationError):
        registry.create("c1", "a", "10.0.0.1", "t3.small", tags=5)


def test_returned_machines_are_detached(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    add_tag(machine, "gpu")
    assert registry.get("c1", machine.id).tags == set()
    tagged, added = registry.add_tag("c1", machine.id, "gpu")
    assert added is True
    assert tagged.tags == {"gpu"}
    assert registry.get("c1", machine.id).tags == {"gpu"}


def test_tag_changes_report_whether_anything_changed(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small", tags=["gpu"])
    assert registry.add_tag("c1", machine.id, "gpu")[1] is False
    assert registry.remove_tag("c1", machine.id, "eu")[1] is False
    untagged, removed = registry.remove_tag("c1", machine.id, "gpu")
    assert removed is True
    assert untagged.tags == set()
    with pytest.raises(MachineNotFoundError):
        registry.add_tag("c2", machine.id, "x")


def test_concurrent_tag_adds_are_all_kept(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    tags = [f"t{i}" for i in range(16)]
    barrier = threading.Barrier(len(tags))

    def tag(name):
        barrier.wait()
        return registry.add_tag("c1", machine.id, name)[1]

    with ThreadPoolExecutor(max_workers=len(tags)) as pool:
        assert all(pool.map(tag, tags))
    assert registry.get("c1", machine.id).tags == set(tags)


def test_tag_add_does_not_clobber_a_concurrent_rename(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    stale = registry.get("c1", machine.id)
    registry.update("c1", machine.id, name="renamed")
    registry.add_tag("c1", stale.id, "gpu")
    current = registry.get("c1", machine.id)
    assert current.name == "renamed"
    assert current.tags == {"gpu"}


def test_registry_interface_is_abstract() -> None:
    class ListOnly(MachineRegistry):
        def list(self, cluster_id):
            return []

    with pytest.raises(TypeError):
        MachineRegistry()
    with pytest.raises(TypeError):
        ListOnly()
    assert isinstance(InMemoryMachineRegistry(), MachineRegistry)


def test_compare_and_set_state_checks_expected(registry) -> None:
    machine = registry.create("c1", "a", "10.0.0.1", "t3.small")
    assert registry.get_state(machine.id) is MachineState.STOPPED
    assert registry.compare_and_set_state(machine, MachineState.STARTED, MachineState.STOPPED) is False
    assert registry.compare_and_set_state(machine, MachineState.STOPPED, MachineState.STARTED) is True
    assert registry.get_state(machine.id) is MachineState.STARTED


def test_json_store_round_trip(tmp_path) -> None:
    path = tmp_path / "store" / "machines.json"
    store = JsonFileMachineRegistry(path)
    machine = store.create("c1", "a", "10.0.0.1", "t3.small", tags=["gpu", "eu"])
    store.compare_and_set_state(machine, MachineState.STOPPED, MachineState.STARTED)

    document = json.loads(path.read_text())
    assert document["machines"][0]["tags"] == ["gpu", "eu"]
    assert document["states"] == {machine.id: "started"}

    reloaded = JsonFileMachineRegistry(path)
    restored = reloaded.get("c1", machine.id)
    assert restored.tags == {"gpu", "eu"}
    assert reloaded.get_state(machine.id) is MachineState.STARTED


def _break_store_writes(path) -> None:
    # A directory where the temp file goes makes every write fail.
    path.with_suffix(path.suffix + ".tmp").mkdir()


def test_json_store_failed_create_leaves_nothing_behind(tmp_path) -> None:
    path = tmp_path / "m.json"
    store = JsonFileMachineRegistry(path)
    _break_store_writes(path)

    with pytest.raises(MachineInternalError):
        store.create("c1", "a", "10.0.0.1", "t3.small")
    assert store.list("c1") == []
    assert not path.exists()


def test_json_store_failed_writes_roll_back_memory(tmp_path) -> None:
    path = tmp_path / "m.json"
    store = JsonFileMachineRegistry(path)
    machine = store.create("c1", "a", "10.0.0.1", "t3.small", tags=["gpu"])
    _break_store_writes(path)

    with pytest.raises(MachineInternalError):
        store.compare_and_set_state(machine, MachineState.STOPPED, MachineState.STARTED)
    assert store.get_state(machine.id) is MachineState.STOPPED

    with pytest.raises(MachineInternalError):
        store.add_tag("c1", machine.id, "eu")
    with pytest.raises(MachineInternalError):
        store.update("c1", machine.id, name="renamed")
    with pytest.raises(MachineInternalError):
        store.delete("c1", machine.id)

    current = store.get("c1", machine.id)
    assert current.name == "a"
    assert current.tags == {"gpu"}
    assert JsonFileMachineRegistry(path).get("c1", machine.id).tags == {"gpu"}
