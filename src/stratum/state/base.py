"""State store contract and the per-key write discipline shared by backends."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from stratum.core.errors import StateStoreError
from stratum.domain.models import RESOURCE_ID_PATTERN, ResourceState
from stratum.secrets import SecretMaterial


class KeyedLocks:
    """One asyncio lock per key, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, ...], asyncio.Lock] = {}

    def for_key(self, *key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class StateStore(ABC):
    """Durable record of resource states, keyed by deployment and resource id.

    ``put`` returns only after the record is durable, so callers may treat
    a completed ``put`` as the write-ahead point for the next step.
    """

    def __init__(self) -> None:
        self._key_locks = KeyedLocks()

    async def put(self, state: ResourceState) -> None:
        _check_deployment_id(state.deployment_id)
        for key, value in state.outputs.items():
            if isinstance(value, SecretMaterial):
                raise StateStoreError(
                    f"Refusing to persist secret material in output '{key}'",
                    details={"resource_id": state.resource_id},
                )
        async with self._key_locks.for_key(*state.key):
            await self._put(state)

    async def delete(self, deployment_id: str, resource_id: str) -> None:
        async with self._key_locks.for_key(deployment_id, resource_id):
            await self._delete(deployment_id, resource_id)

    @abstractmethod
    async def get(self, deployment_id: str, resource_id: str) -> ResourceState | None:
        ...

    @abstractmethod
    async def list(self, deployment_id: str) -> list[ResourceState]:
        """All records of a deployment ordered by plan position, then id."""
        ...

    @abstractmethod
    async def deployments(self) -> list[str]:
        ...

    @abstractmethod
    async def _put(self, state: ResourceState) -> None:
        ...

    @abstractmethod
    async def _delete(self, deployment_id: str, resource_id: str) -> None:
        ...

    async def close(self) -> None:
        return None


def sort_states(states: list[ResourceState]) -> list[ResourceState]:
    return sorted(states, key=lambda s: (s.position, s.resource_id))


def _check_deployment_id(deployment_id: str) -> None:
    if not RESOURCE_ID_PATTERN.match(deployment_id):
        raise StateStoreError(
            f"Invalid deployment id '{deployment_id}'",
            details={"deployment_id": deployment_id},
        )
