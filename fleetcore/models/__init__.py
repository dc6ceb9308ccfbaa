"""Fleetcore data models — all Pydantic v2, all frozen (immutable)."""

from fleetcore.models.addresses import (
    DEFAULT_SCOPE_TABLE,
    Address,
    AddressType,
    NetworkScope,
    ScopeRule,
    ScopeTable,
)
from fleetcore.models.config import DEFAULT_IMAGES_URL, EnvironmentConfig
from fleetcore.models.hardware import Constraint, HardwareCharacteristics, InstanceType
from fleetcore.models.metadata import (
    ImageSpec,
    LookupParams,
    MetadataSource,
    ToolsSpec,
)
from fleetcore.models.state import (
    VALID_MACHINE_TRANSITIONS,
    BootstrapState,
    EnvironmentState,
    InstanceId,
    InstanceRecord,
    MachineState,
)

__all__ = [
    # addresses
    "Address",
    "AddressType",
    "NetworkScope",
    "ScopeRule",
    "ScopeTable",
    "DEFAULT_SCOPE_TABLE",
    # config
    "EnvironmentConfig",
    "DEFAULT_IMAGES_URL",
    # hardware
    "Constraint",
    "HardwareCharacteristics",
    "InstanceType",
    # metadata
    "MetadataSource",
    "ImageSpec",
    "ToolsSpec",
    "LookupParams",
    # state
    "InstanceId",
    "BootstrapState",
    "EnvironmentState",
    "MachineState",
    "VALID_MACHINE_TRANSITIONS",
    "InstanceRecord",
]
