"""Pydantic models for the machine HTTP surface."""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, field_serializer

from server.machines import ActionResult, Machine, MachineState


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MachineCreateRequest(_CamelModel):
    """Body of POST /clusters/{clusterId}/machines."""

    name: str = Field(..., min_length=1, description="Display name")
    ip_address: IPvAnyAddress = Field(..., alias="ipAddress", description="IPv4 or IPv6 address")
    instance_type: str = Field(..., alias="instanceType", min_length=1)
    tags: List[str] = Field(default_factory=list, description="Selector labels")

    @field_serializer("ip_address")
    def serialize_ip_address(self, value: Optional[IPvAnyAddress]) -> Optional[str]:
        return None if value is None else str(value)


class MachineUpdateRequest(_CamelModel):
    """Body of PATCH /clusters/{clusterId}/machines/{machineId}; omitted fields are kept."""

    name: Optional[str] = Field(default=None, min_length=1)
    ip_address: Optional[IPvAnyAddress] = Field(default=None, alias="ipAddress")
    instance_type: Optional[str] = Field(default=None, alias="instanceType", min_length=1)

    @field_serializer("ip_address")
    def serialize_ip_address(self, value: Optional[IPvAnyAddress]) -> Optional[str]:
        return None if value is None else str(value)


class TagRequest(BaseModel):
    tag: str = Field(..., min_length=1)


class ActionRequest(BaseModel):
    # Unknown or non-string actions are reported per machine, not rejected here.
    action: Any
    tags: List[str] = Field(default_factory=list)


class MachineResponse(_CamelModel):
    id: str
    cluster_id: str = Field(..., alias="clusterId")
    name: str
    ip_address: str = Field(..., alias="ipAddress")
    instance_type: str = Field(..., alias="instanceType")
    tags: List[str]
    state: MachineState

    @classmethod
    def from_machine(cls, machine: Machine, state: MachineState) -> "MachineResponse":
        return cls(
            id=machine.id,
            cluster_id=machine.cluster_id,
            name=machine.name,
            ip_address=machine.ip_address,
            instance_type=machine.instance_type,
            tags=machine.tags.to_list(),
            state=state,
        )


class MessageResponse(BaseModel):
    message: str


class MachineMessageResponse(BaseModel):
    message: str
    machine: MachineResponse


class ActionResultResponse(_CamelModel):
    machine_id: str = Field(..., alias="machineId")
    status: str
    message: str

    @classmethod
    def from_result(cls, result: ActionResult) -> "ActionResultResponse":
        return cls(machine_id=result.machine_id, status=result.status.value, message=result.message)


class ActionResponse(BaseModel):
    message: str
    results: List[ActionResultResponse]


__all__ = [
    "ActionRequest",
    "ActionResponse",
    "ActionResultResponse",
    "MachineCreateRequest",
    "MachineMessageResponse",
    "MachineResponse",
    "MachineUpdateRequest",
    "MessageResponse",
    "TagRequest",
]
