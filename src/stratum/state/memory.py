from __future__ import annotations

from stratum.domain.models import ResourceState
from stratum.state.base import StateStore, sort_states


class InMemoryStateStore(StateStore):
    """Process-local store for tests and throwaway runs."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[tuple[str, str], ResourceState] = {}

    async def get(self, deployment_id: str, resource_id: str) -> ResourceState | None:
        return self._records.get((deployment_id, resource_id))

    async def list(self, deployment_id: str) -> list[ResourceState]:
        return sort_states([s for (dep, _), s in self._records.items() if dep == deployment_id])

    async def deployments(self) -> list[str]:
        return sorted({dep for dep, _ in self._records})

    async def _put(self, state: ResourceState) -> None:
        self._records[state.key] = state.model_copy(deep=True)

    async def _delete(self, deployment_id: str, resource_id: str) -> None:
        self._records.pop((deployment_id, resource_id), None)
