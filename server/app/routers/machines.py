"""Cluster machine endpoints: CRUD, tags, lifecycle and bulk actions."""
from __future__ import annotations

from typing import List, NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException

from server.machines import (
    ActionDispatcher,
    Machine,
    MachineConflictError,
    MachineNotFoundError,
    MachineRegistry,
    MachineStateMachine,
    MachineValidationError,
)
from server.models.api import (
    ActionRequest,
    ActionResponse,
    ActionResultResponse,
    MachineCreateRequest,
    MachineMessageResponse,
    MachineResponse,
    MachineUpdateRequest,
    MessageResponse,
    TagRequest,
)
from server.services import get_dispatcher, get_registry, get_state_machine

LOGGER = structlog.get_logger(__name__)

router = APIRouter(prefix="/clusters/{cluster_id}/machines", tags=["machines"])


def _raise_http(exc: Exception, failure: str) -> NoReturn:
    if isinstance(exc, MachineNotFoundError):
        raise HTTPException(status_code=404, detail="Machine not found in the cluster.") from exc
    if isinstance(exc, (MachineConflictError, MachineValidationError)):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    LOGGER.error("machine_request_failed", failure=failure, error=str(exc))
    raise HTTPException(status_code=500, detail=f"{failure}: {exc}") from exc


def _to_response(machine: Machine, state_machine: MachineStateMachine) -> MachineResponse:
    return MachineResponse.from_machine(machine, state_machine.state_of(machine))


@router.get("", response_model=List[MachineResponse])
def list_machines(
    cluster_id: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    """Return every machine registered in the cluster."""
    try:
        return [_to_response(machine, state_machine) for machine in registry.list(cluster_id)]
    except Exception as exc:
        _raise_http(exc, "Error fetching machines in the cluster")


@router.post("", status_code=201, response_model=MachineResponse)
def create_machine(
    cluster_id: str,
    payload: MachineCreateRequest,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    try:
        machine = registry.create(
            cluster_id,
            name=payload.name,
            ip_address=str(payload.ip_address),
            instance_type=payload.instance_type,
            tags=payload.tags,
        )
    except Exception as exc:
        _raise_http(exc, "Error creating machine in the cluster")
    return _to_response(machine, state_machine)


@router.post("/actions", response_model=ActionResponse)
def perform_action(
    cluster_id: str,
    payload: ActionRequest,
    dispatcher: ActionDispatcher = Depends(get_dispatcher),
):
    """Apply start/reboot/stop to every machine carrying all of ``payload.tags``."""
    try:
        results = dispatcher.dispatch(cluster_id, payload.action, payload.tags)
    except Exception as exc:
        _raise_http(exc, "Error performing action on machines with tags")
    return ActionResponse(
        message="Action performed on machines with tags.",
        results=[ActionResultResponse.from_result(result) for result in results],
    )


@router.get("/{machine_id}", response_model=MachineResponse)
def get_machine(
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    try:
        return _to_response(registry.get(cluster_id, machine_id), state_machine)
    except Exception as exc:
        _raise_http(exc, "Error fetching machine")


@router.patch("/{machine_id}", response_model=MachineMessageResponse)
def update_machine(
    cluster_id: str,
    machine_id: str,
    payload: MachineUpdateRequest,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    try:
        machine = registry.update(cluster_id, machine_id, **payload.model_dump(exclude_none=True))
        return MachineMessageResponse(
            message="Machine details updated successfully.",
            machine=_to_response(machine, state_machine),
        )
    except Exception as exc:
        _raise_http(exc, "Error updating machine details")


@router.delete("/{machine_id}", response_model=MessageResponse)
def delete_machine(
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
):
    try:
        registry.delete(cluster_id, machine_id)
    except Exception as exc:
        _raise_http(exc, "Error deleting machine in the cluster")
    return MessageResponse(message="Machine deleted successfully.")


def _transition(
    action: str,
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry,
    state_machine: MachineStateMachine,
) -> MessageResponse:
    try:
        machine = registry.get(cluster_id, machine_id)
        getattr(state_machine, action)(machine)
    except Exception as exc:
        _raise_http(exc, f"Error running {action} on machine in the cluster")
    past = {"start": "started", "stop": "stopped", "reboot": "rebooted"}[action]
    return MessageResponse(message=f"Machine {past} successfully.")


@router.post("/{machine_id}/start", response_model=MessageResponse)
def start_machine(
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    """Start a stopped machine; 400 when it is already started."""
    return _transition("start", cluster_id, machine_id, registry, state_machine)


@router.post("/{machine_id}/stop", response_model=MessageResponse)
def stop_machine(
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    return _transition("stop", cluster_id, machine_id, registry, state_machine)


@router.post("/{machine_id}/reboot", response_model=MessageResponse)
def reboot_machine(
    cluster_id: str,
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    return _transition("reboot", cluster_id, machine_id, registry, state_machine)


@router.post("/{machine_id}/tags", response_model=MachineMessageResponse)
def add_machine_tag(
    cluster_id: str,
    machine_id: str,
    payload: TagRequest,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    try:
        machine, added = registry.add_tag(cluster_id, machine_id, payload.tag)
    except Exception as exc:
        _raise_http(exc, "Error adding tag to machine")
    message = "Tag added to machine successfully." if added else "Tag already present on machine."
    return MachineMessageResponse(message=message, machine=_to_response(machine, state_machine))


@router.delete("/{machine_id}/tags/{tag}", response_model=MachineMessageResponse)
def remove_machine_tag(
    cluster_id: str,
    machine_id: str,
    tag: str,
    registry: MachineRegistry = Depends(get_registry),
    state_machine: MachineStateMachine = Depends(get_state_machine),
):
    try:
        machine, removed = registry.remove_tag(cluster_id, machine_id, tag)
    except Exception as exc:
        _raise_http(exc, "Error removing tag from machine")
    message = "Tag removed from machine successfully." if removed else "Tag was not present on machine."
    return MachineMessageResponse(message=message, machine=_to_response(machine, state_machine))
