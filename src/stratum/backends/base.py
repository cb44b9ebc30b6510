from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Protocol

from stratum.domain.models import ResourceKind
from stratum.secrets import SecretMaterial


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a health probe."""

    healthy: bool
    detail: str = ""


@dataclass(frozen=True)
class BackendHealth:
    status: Literal["healthy", "degraded", "unreachable", "unconfigured"]
    details: str | None = None


class BackendAdapter(Protocol):
    """Boundary to an external provisioning API.

    ``create`` and ``delete`` must be idempotent: creating an existing
    resource converges it to ``config`` and deleting an absent resource is
    a no-op. Failures are raised as TransientBackendError (retried by the
    engine) or PermanentBackendError (never retried).
    """

    name: str

    async def create(
        self,
        resource_id: str,
        kind: ResourceKind,
        config: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Provision the resource and return its outputs.

        Outputs may contain secret handles but never secret material.
        """
        ...

    async def delete(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> None:
        ...

    async def verify(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        ...

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        ...

    async def health_check(self) -> BackendHealth:
        ...

    async def aclose(self) -> None:
        ...
