"""Bootstrap state record and provisioning state-machine models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fleetcore.models.addresses import Address
from fleetcore.models.hardware import HardwareCharacteristics

InstanceId = str


class BootstrapState(BaseModel):
    """The control-plane membership record of one environment.

    ``state_instances[i]`` was provisioned with ``characteristics[i]``.
    A record whose two lists differ in length cannot be constructed.
    """

    model_config = ConfigDict(frozen=True)

    state_instances: list[InstanceId] = Field(default_factory=list)
    characteristics: list[HardwareCharacteristics] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_alignment(self) -> BootstrapState:
        if len(self.state_instances) != len(self.characteristics):
            raise ValueError(
                f"state_instances ({len(self.state_instances)}) and "
                f"characteristics ({len(self.characteristics)}) must be index-aligned"
            )
        return self


class EnvironmentState(str, Enum):
    """Lifecycle of an environment's control plane."""

    UNBOOTSTRAPPED = "unbootstrapped"
    BOOTSTRAPPING = "bootstrapping"
    BOOTSTRAPPED = "bootstrapped"


class MachineState(str, Enum):
    """Per-machine provisioning sub-flow."""

    REQUESTED = "requested"
    HARDWARE_SELECTED = "hardware_selected"
    LAUNCHED = "launched"
    ADDRESSES_RESOLVED = "addresses_resolved"
    READY = "ready"
    FAILED = "failed"


# Enforced by MachineTracker.  READY and FAILED are terminal.
VALID_MACHINE_TRANSITIONS: dict[MachineState, set[MachineState]] = {
    MachineState.REQUESTED: {MachineState.HARDWARE_SELECTED, MachineState.FAILED},
    MachineState.HARDWARE_SELECTED: {MachineState.LAUNCHED, MachineState.FAILED},
    MachineState.LAUNCHED: {MachineState.ADDRESSES_RESOLVED, MachineState.FAILED},
    MachineState.ADDRESSES_RESOLVED: {MachineState.READY, MachineState.FAILED},
    MachineState.READY: set(),
    MachineState.FAILED: set(),
}


class InstanceRecord(BaseModel):
    """What a successful bootstrap or start request hands back."""

    model_config = ConfigDict(frozen=True)

    instance_id: InstanceId
    machine_id: str
    instance_type: str
    image_id: str
    hardware: HardwareCharacteristics
    addresses: list[Address] = Field(default_factory=list)
    is_controller: bool = False
