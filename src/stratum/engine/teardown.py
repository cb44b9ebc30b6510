"""Rollback/cleanup planner: reverse-dependency teardown from recorded state."""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Iterable, List

import structlog

from stratum.backends.registry import BackendPool
from stratum.core.errors import BackendError, StateStoreError
from stratum.domain.lifecycle import transition
from stratum.domain.models import ResourceState, ResourceStatus
from stratum.engine.results import DestroyResult
from stratum.engine.retry import AttemptCounter, RetryPolicy, call_with_retry
from stratum.planning.graph import topological_order
from stratum.state.base import StateStore

logger = structlog.get_logger()

_GONE = "gone"


def plan_teardown(states: Iterable[ResourceState]) -> List[ResourceState]:
    """Order recorded resources so dependents are deleted before their dependencies.

    Edges come from the dependencies recorded at apply time; edges to
    resources that are no longer recorded are ignored.
    """
    active = {s.resource_id: s for s in states if s.status != ResourceStatus.deleted}
    order = topological_order(
        {rid: state.depends_on for rid, state in active.items()},
        ignore_missing=True,
    )
    return [active[rid] for rid in reversed(order)]


class TeardownPlanner:
    """Drives deletion of a deployment in reverse dependency order.

    A resource is deleted only once every recorded dependent is gone.
    A failed deletion blocks the resources it depends on but not
    independent ones; re-running retries only what is left.
    """

    def __init__(
        self,
        store: StateStore,
        backends: BackendPool,
        *,
        retry: RetryPolicy | None = None,
        max_workers: int = 4,
        retain_deleted: bool = False,
    ) -> None:
        self._store = store
        self._backends = backends
        self._retry = retry or RetryPolicy()
        self._max_workers = max_workers
        self._retain_deleted = retain_deleted
        self._cancelled = False

    def cancel(self) -> None:
        if not self._cancelled:
            logger.warning("cancellation_requested")
        self._cancelled = True

    async def plan(self, deployment_id: str) -> List[ResourceState]:
        return plan_teardown(await self._store.list(deployment_id))

    async def destroy(self, deployment_id: str) -> DestroyResult:
        log = logger.bind(deployment_id=deployment_id)
        started = time.monotonic()

        ordered = await self.plan(deployment_id)
        result = DestroyResult(deployment_id=deployment_id, order=[s.resource_id for s in ordered])
        states = {s.resource_id: s for s in ordered}
        dependents: Dict[str, List[str]] = {rid: [] for rid in states}
        for state in ordered:
            for dependency in state.depends_on:
                if dependency in dependents:
                    dependents[dependency].append(state.resource_id)

        settled = {rid: asyncio.Event() for rid in states}
        finals: Dict[str, str] = {}
        semaphore = asyncio.Semaphore(self._max_workers)

        async def run(state: ResourceState) -> None:
            try:
                finals[state.resource_id] = await self._teardown_one(
                    state, sorted(dependents[state.resource_id]), settled, finals, semaphore, result
                )
            finally:
                settled[state.resource_id].set()

        log.info("destroy_started", resources=len(ordered))
        tasks = [asyncio.ensure_future(run(state)) for state in ordered]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        result.duration_seconds = time.monotonic() - started
        log.info(
            "destroy_finished",
            outcome=result.outcome,
            deleted=len(result.deleted),
            removed=len(result.removed),
            failed=len(result.failed),
            blocked=len(result.blocked),
            duration=round(result.duration_seconds, 3),
        )
        return result

    async def _teardown_one(
        self,
        state: ResourceState,
        dependents: List[str],
        settled: Dict[str, asyncio.Event],
        finals: Dict[str, str],
        semaphore: asyncio.Semaphore,
        result: DestroyResult,
    ) -> str:
        log = logger.bind(deployment_id=state.deployment_id, resource_id=state.resource_id)
        for dependent in dependents:
            await settled[dependent].wait()

        remaining = [rid for rid in dependents if finals.get(rid) != _GONE]
        if remaining:
            if self._cancelled and all(rid in result.cancelled for rid in remaining):
                result.cancelled.append(state.resource_id)
            else:
                result.blocked[state.resource_id] = remaining
                log.warning("resource_delete_blocked", blocked_by=remaining)
            return "blocked"

        if state.status == ResourceStatus.pending:
            # Never provisioned; nothing to call.
            await self._store.delete(state.deployment_id, state.resource_id)
            result.removed.append(state.resource_id)
            log.info("resource_record_removed")
            return _GONE

        async with semaphore:
            if self._cancelled:
                result.cancelled.append(state.resource_id)
                return "cancelled"
            return await self._delete(state, result, log)

    async def _delete(
        self,
        state: ResourceState,
        result: DestroyResult,
        log: structlog.stdlib.BoundLogger,
    ) -> str:
        if state.status == ResourceStatus.creating:
            state = transition(state, ResourceStatus.failed, error="interrupted during create")
            await self._store.put(state)
        if state.status != ResourceStatus.deleting:
            state = transition(state, ResourceStatus.deleting, attempts=0)
            await self._store.put(state)
        log.info("resource_deleting", kind=state.kind.value)

        adapter = self._backends.for_resource(state.kind, state.backend)
        counter = AttemptCounter()
        try:
            await call_with_retry(
                lambda: adapter.delete(state.resource_id, state.kind, state.outputs),
                self._retry,
                counter=counter,
                deployment_id=state.deployment_id,
                resource_id=state.resource_id,
            )
        except StateStoreError:
            raise
        except BackendError as exc:
            return await self._fail(state, exc.message, counter.count, result, log)
        except Exception as exc:
            log.exception("resource_unexpected_error")
            return await self._fail(state, f"{type(exc).__name__}: {exc}", counter.count, result, log)

        state = transition(state, ResourceStatus.deleted, attempts=counter.count)
        await self._store.put(state)
        if not self._retain_deleted:
            await self._store.delete(state.deployment_id, state.resource_id)
        result.deleted.append(state.resource_id)
        log.info("resource_deleted", attempts=counter.count)
        return _GONE

    async def _fail(
        self,
        state: ResourceState,
        message: str,
        attempts: int,
        result: DestroyResult,
        log: structlog.stdlib.BoundLogger,
    ) -> str:
        state = transition(state, ResourceStatus.failed, error=message, attempts=attempts)
        await self._store.put(state)
        result.failed[state.resource_id] = message
        log.error("resource_delete_failed", error=message)
        return "failed"
