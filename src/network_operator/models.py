"""Pydantic models for network manifests and status records.

These models provide:
1. Type-safe YAML parsing with the camelCase field names of the manifest
2. Validation at the boundary (fail fast, fail loudly)
3. A stable serialized status shape: {vpcId, subnetId, status, errorMessage}
"""

from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# Lifecycle states
# =============================================================================


class LifecycleState(str, Enum):
    """Lifecycle labels persisted in the ``status`` field."""

    ABSENT = "Absent"
    CREATING = "Creating"
    CREATED = "Created"
    UPDATED = "Updated"
    DELETING = "Deleting"
    DELETED = "Deleted"
    ERROR = "Error"


# =============================================================================
# Desired state
# =============================================================================


def _validate_cidr(value: str) -> str:
    # Syntax check only; the notation as written is kept for drift comparison
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError as e:
        raise ValueError(f"invalid CIDR block '{value}': {e}") from e
    return value


class NetworkSpec(BaseModel):
    """Desired virtual network and subnet, as declared by the user."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    region: Annotated[str, Field(min_length=1)]
    cidr_block: str = Field(alias="cidrBlock")
    name: Annotated[str, Field(min_length=1, max_length=256)]
    subnet_cidr: str = Field(alias="subnetCIDR")

    @field_validator("cidr_block", "subnet_cidr")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        return _validate_cidr(v.strip())

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return v.strip().lower()


class ResourceMetadata(BaseModel):
    """Manifest metadata (Kubernetes-style wrapper)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    deletion_requested: bool = Field(False, alias="deletionRequested")


class NetworkManifest(BaseModel):
    """A full manifest file: metadata plus the desired spec."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    spec: NetworkSpec


# =============================================================================
# Observed state
# =============================================================================


class NetworkStatus(BaseModel):
    """Observed status record, mutated only by the reconciler.

    Instances are immutable values; each step of a pass produces a new one.
    Empty IDs are represented as the empty string, matching the persisted form.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    vpc_id: str = Field("", alias="vpcId")
    subnet_id: str = Field("", alias="subnetId")
    state: LifecycleState = Field(LifecycleState.ABSENT, alias="status")
    error_message: str = Field("", alias="errorMessage")

    @field_validator("vpc_id", "subnet_id", "error_message", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_record(self) -> dict[str, str]:
        """Serialize to the persisted field names with a plain-text state."""
        return {
            "vpcId": self.vpc_id,
            "subnetId": self.subnet_id,
            "status": self.state.value,
            "errorMessage": self.error_message,
        }
