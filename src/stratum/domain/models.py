from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Scalar = Union[str, int, float, bool, None]

RESOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class ResourceKind(StrEnum):
    """Kinds of infrastructure a deployment can declare."""

    registry = "Registry"
    compute_cluster = "ComputeCluster"
    database = "Database"
    ai_service = "AIService"
    secret = "Secret"
    gateway = "Gateway"
    network = "Network"

    @classmethod
    def parse(cls, value: str) -> "ResourceKind":
        """Resolve a kind name case-insensitively."""
        lowered = str(value).strip().lower()
        for kind in cls:
            if kind.value.lower() == lowered or kind.name == lowered:
                return kind
        raise ValueError(f"Unknown resource kind '{value}'")


class ResourceStatus(StrEnum):
    """Lifecycle states of a provisioned resource."""

    pending = "Pending"
    creating = "Creating"
    created = "Created"
    verify_failed = "VerifyFailed"
    deleting = "Deleting"
    deleted = "Deleted"
    failed = "Failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceDescriptor(BaseModel):
    """A named unit of infrastructure and the identifiers it depends on."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ResourceKind
    config: dict[str, Scalar] = Field(default_factory=dict)
    depends_on: frozenset[str] = Field(default_factory=frozenset)
    backend: str | None = None

    @field_validator("id")
    @classmethod
    def _valid_id(cls, value: str) -> str:
        if not RESOURCE_ID_PATTERN.match(value):
            raise ValueError(f"Invalid resource id '{value}'")
        return value

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> ResourceKind:
        if isinstance(value, ResourceKind):
            return value
        return ResourceKind.parse(value)

    @field_validator("config")
    @classmethod
    def _scalar_config(cls, value: dict[str, Any]) -> dict[str, Scalar]:
        for key, item in value.items():
            if not isinstance(item, (str, int, float, bool)) and item is not None:
                raise ValueError(f"Config value for '{key}' must be a scalar")
        return value

    def fingerprint(self) -> str:
        """Hash of the declared configuration, used for drift detection."""
        return compute_fingerprint(self.kind, self.config, self.depends_on)


def compute_fingerprint(
    kind: ResourceKind | str,
    config: Mapping[str, Any],
    depends_on: frozenset[str] | set[str] | list[str] = frozenset(),
) -> str:
    payload = {
        "kind": str(kind),
        "config": dict(config),
        "depends_on": sorted(depends_on),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResourceState(BaseModel):
    """Persisted record of one resource within a deployment."""

    deployment_id: str
    resource_id: str
    kind: ResourceKind
    status: ResourceStatus = ResourceStatus.pending
    fingerprint: str | None = None
    position: int = 0
    depends_on: list[str] = Field(default_factory=list)
    backend: str | None = None
    outputs: dict[str, Scalar] = Field(default_factory=dict)
    last_operation: str | None = None
    attempts: int = 0
    error: str | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.deployment_id, self.resource_id)

    @classmethod
    def pending_for(
        cls,
        deployment_id: str,
        descriptor: ResourceDescriptor,
        position: int,
    ) -> "ResourceState":
        return cls(
            deployment_id=deployment_id,
            resource_id=descriptor.id,
            kind=descriptor.kind,
            status=ResourceStatus.pending,
            position=position,
            depends_on=sorted(descriptor.depends_on),
            backend=descriptor.backend,
        )
