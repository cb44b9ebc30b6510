"""File-backed state store: one JSON document per deployment."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import pydantic
import structlog

from stratum.core.errors import StateStoreError
from stratum.domain.models import ResourceState
from stratum.state.base import KeyedLocks, StateStore, sort_states

logger = structlog.get_logger()

STATE_FORMAT_VERSION = 1


class JsonStateStore(StateStore):
    """Stores each deployment in ``<state_dir>/<deployment_id>.json``.

    Every write replaces the whole document atomically (temp file, fsync,
    ``os.replace``), so a crash leaves either the previous or the new
    document on disk, never a torn one.
    """

    def __init__(self, state_dir: Path) -> None:
        super().__init__()
        self._state_dir = Path(state_dir)
        self._file_locks = KeyedLocks()

    def path_for(self, deployment_id: str) -> Path:
        return self._state_dir / f"{deployment_id}.json"

    async def get(self, deployment_id: str, resource_id: str) -> ResourceState | None:
        records = await asyncio.to_thread(self._read, deployment_id)
        return records.get(resource_id)

    async def list(self, deployment_id: str) -> list[ResourceState]:
        records = await asyncio.to_thread(self._read, deployment_id)
        return sort_states(list(records.values()))

    async def deployments(self) -> list[str]:
        if not self._state_dir.exists():
            return []
        return sorted(path.stem for path in self._state_dir.glob("*.json"))

    async def _put(self, state: ResourceState) -> None:
        async with self._file_locks.for_key(state.deployment_id):
            records = await asyncio.to_thread(self._read, state.deployment_id)
            records[state.resource_id] = state
            await asyncio.to_thread(self._write, state.deployment_id, records)

    async def _delete(self, deployment_id: str, resource_id: str) -> None:
        async with self._file_locks.for_key(deployment_id):
            records = await asyncio.to_thread(self._read, deployment_id)
            if records.pop(resource_id, None) is None:
                return
            if records:
                await asyncio.to_thread(self._write, deployment_id, records)
            else:
                self.path_for(deployment_id).unlink(missing_ok=True)

    def _read(self, deployment_id: str) -> dict[str, ResourceState]:
        path = self.path_for(deployment_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text())
            resources = data.get("resources", {})
            return {rid: ResourceState.model_validate(raw) for rid, raw in resources.items()}
        except (OSError, ValueError, pydantic.ValidationError) as exc:
            raise StateStoreError(
                f"Unreadable state file {path}: {exc}",
                details={"deployment_id": deployment_id},
            ) from exc

    def _write(self, deployment_id: str, records: dict[str, ResourceState]) -> None:
        payload: dict[str, Any] = {
            "version": STATE_FORMAT_VERSION,
            "deployment_id": deployment_id,
            "resources": {
                rid: state.model_dump(mode="json")
                for rid, state in sorted(records.items())
            },
        }
        path = self.path_for(deployment_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StateStoreError(
                f"Failed to write state file {path}: {exc}",
                details={"deployment_id": deployment_id},
            ) from exc
        logger.debug("state_written", path=str(path), resources=len(records))
