"""SQLAlchemy-backed state store (SQLite via aiosqlite, or PostgreSQL)."""

from __future__ import annotations

import asyncio
from datetime import timezone
from pathlib import Path

import structlog
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stratum.core.errors import StateStoreError
from stratum.domain.models import ResourceKind, ResourceState, ResourceStatus
from stratum.state.base import StateStore
from stratum.state.models import Base, ResourceStateRecord

logger = structlog.get_logger()


class SqlStateStore(StateStore):
    """Persists one row per (deployment, resource), committing on every put."""

    def __init__(
        self,
        database_url: str | None = None,
        *,
        engine: AsyncEngine | None = None,
        echo: bool = False,
    ) -> None:
        super().__init__()
        if engine is None:
            if database_url is None:
                raise ValueError("database_url or engine is required")
            _ensure_sqlite_directory(database_url)
            engine = create_async_engine(database_url, echo=echo, future=True)
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )
        self._write_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Create the table if it does not exist yet."""
        if self._initialized:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True

    async def get(self, deployment_id: str, resource_id: str) -> ResourceState | None:
        await self.initialize()
        stmt = select(ResourceStateRecord).where(
            ResourceStateRecord.deployment_id == deployment_id,
            ResourceStateRecord.resource_id == resource_id,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StateStoreError(f"State lookup failed: {exc}") from exc
        return _to_state(record) if record else None

    async def list(self, deployment_id: str) -> list[ResourceState]:
        await self.initialize()
        stmt = (
            select(ResourceStateRecord)
            .where(ResourceStateRecord.deployment_id == deployment_id)
            .order_by(ResourceStateRecord.position, ResourceStateRecord.resource_id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StateStoreError(f"State listing failed: {exc}") from exc
        return [_to_state(record) for record in records]

    async def deployments(self) -> list[str]:
        await self.initialize()
        stmt = select(ResourceStateRecord.deployment_id).distinct()
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return sorted(result.scalars().all())

    async def _put(self, state: ResourceState) -> None:
        await self.initialize()
        stmt = select(ResourceStateRecord).where(
            ResourceStateRecord.deployment_id == state.deployment_id,
            ResourceStateRecord.resource_id == state.resource_id,
        )
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(stmt)
                    record = result.scalar_one_or_none()
                    if record is None:
                        record = ResourceStateRecord(
                            deployment_id=state.deployment_id,
                            resource_id=state.resource_id,
                        )
                        session.add(record)
                    _apply(record, state)
                    await session.commit()
            except SQLAlchemyError as exc:
                raise StateStoreError(
                    f"Failed to persist state for '{state.resource_id}': {exc}",
                    details={"deployment_id": state.deployment_id},
                ) from exc

    async def _delete(self, deployment_id: str, resource_id: str) -> None:
        await self.initialize()
        stmt = delete(ResourceStateRecord).where(
            ResourceStateRecord.deployment_id == deployment_id,
            ResourceStateRecord.resource_id == resource_id,
        )
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    await session.execute(stmt)
                    await session.commit()
            except SQLAlchemyError as exc:
                raise StateStoreError(f"Failed to delete state for '{resource_id}': {exc}") from exc

    async def close(self) -> None:
        await self._engine.dispose()


def _apply(record: ResourceStateRecord, state: ResourceState) -> None:
    record.kind = state.kind.value
    record.status = state.status.value
    record.fingerprint = state.fingerprint
    record.position = state.position
    record.depends_on = list(state.depends_on)
    record.backend = state.backend
    record.outputs = dict(state.outputs)
    record.last_operation = state.last_operation
    record.attempts = state.attempts
    record.error = state.error
    record.updated_at = state.updated_at


def _to_state(record: ResourceStateRecord) -> ResourceState:
    updated_at = record.updated_at
    # SQLite drops tzinfo on the way back.
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return ResourceState(
        deployment_id=record.deployment_id,
        resource_id=record.resource_id,
        kind=ResourceKind(record.kind),
        status=ResourceStatus(record.status),
        fingerprint=record.fingerprint,
        position=record.position,
        depends_on=list(record.depends_on or []),
        backend=record.backend,
        outputs=dict(record.outputs or {}),
        last_operation=record.last_operation,
        attempts=record.attempts,
        error=record.error,
        updated_at=updated_at,
    )


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
