"""Execution engine: realizes a deployment plan against backend adapters."""

from __future__ import annotations

import asyncio
import time
from typing import Dict

import structlog

from stratum.backends.registry import BackendPool
from stratum.core.errors import (
    BackendError,
    ConfigurationError,
    StateStoreError,
)
from stratum.domain.lifecycle import USABLE_STATUSES, transition
from stratum.domain.models import ResourceDescriptor, ResourceState, ResourceStatus
from stratum.engine.results import ApplyResult, VerifyReport
from stratum.engine.retry import AttemptCounter, RetryPolicy, call_with_retry
from stratum.planning.graph import DeploymentPlan
from stratum.specs.substitution import OutputSubstitutor
from stratum.state.base import StateStore
from stratum.verification.verifier import Verifier

logger = structlog.get_logger()


class ExecutionEngine:
    """Runs a plan as a task graph with bounded parallelism.

    Each descriptor waits for its dependencies to settle. Independent
    subtrees run concurrently up to ``max_workers``; a dependency chain is
    always serialized. Every transition is persisted before the engine
    moves on, so an interrupted run can be resumed from the state store.
    """

    def __init__(
        self,
        store: StateStore,
        backends: BackendPool,
        *,
        verifier: Verifier | None = None,
        retry: RetryPolicy | None = None,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._backends = backends
        self._verifier = verifier or Verifier()
        self._retry = retry or RetryPolicy()
        self._max_workers = max_workers
        self._cancelled = False

    def cancel(self) -> None:
        """Stop new resources from entering Creating; in-flight calls finish."""
        if not self._cancelled:
            logger.warning("cancellation_requested")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def apply(self, plan: DeploymentPlan, deployment_id: str) -> ApplyResult:
        log = logger.bind(deployment_id=deployment_id)
        started = time.monotonic()
        result = ApplyResult(deployment_id=deployment_id, plan_order=plan.ids)

        states = await self._prepare(plan, deployment_id)
        run = _ApplyRun(
            engine=self,
            plan=plan,
            deployment_id=deployment_id,
            states=states,
            result=result,
            semaphore=asyncio.Semaphore(self._max_workers),
        )
        log.info("apply_started", resources=len(plan), max_workers=self._max_workers)
        await run.execute()

        result.duration_seconds = time.monotonic() - started
        log.info(
            "apply_finished",
            outcome=result.outcome,
            created=len(result.created),
            unchanged=len(result.unchanged),
            failed=len(result.failed),
            blocked=len(result.blocked),
            cancelled=len(result.cancelled),
            duration=round(result.duration_seconds, 3),
        )
        return result

    async def reverify(self, deployment_id: str) -> VerifyReport:
        """Re-run verification for every Created or VerifyFailed resource."""
        report = VerifyReport(deployment_id=deployment_id)
        for state in await self._store.list(deployment_id):
            if state.status not in USABLE_STATUSES:
                continue
            updated = await self._verify(state)
            if updated.status == ResourceStatus.created:
                report.healthy[state.resource_id] = "ok"
            else:
                report.unhealthy[state.resource_id] = updated.error or "unhealthy"
        return report

    async def _prepare(self, plan: DeploymentPlan, deployment_id: str) -> Dict[str, ResourceState]:
        """Register Pending records and settle runs interrupted mid-call."""
        existing = {s.resource_id: s for s in await self._store.list(deployment_id)}
        states: Dict[str, ResourceState] = {}

        for position, descriptor in enumerate(plan):
            state = existing.get(descriptor.id)
            if state is None or state.status == ResourceStatus.deleted:
                state = ResourceState.pending_for(deployment_id, descriptor, position)
                await self._store.put(state)
            else:
                metadata = {
                    "position": position,
                    "depends_on": sorted(descriptor.depends_on),
                    "kind": descriptor.kind,
                    "backend": descriptor.backend,
                }
                if any(getattr(state, key) != value for key, value in metadata.items()):
                    state = state.model_copy(update=metadata)
                    await self._store.put(state)

            if state.status in (ResourceStatus.creating, ResourceStatus.deleting):
                operation = state.last_operation or state.status.value.lower()
                state = transition(state, ResourceStatus.failed, error=f"interrupted during {operation}")
                await self._store.put(state)
                logger.warning(
                    "resource_interrupted",
                    deployment_id=deployment_id,
                    resource_id=descriptor.id,
                    operation=operation,
                )
            states[descriptor.id] = state
        return states

    async def _create(
        self,
        descriptor: ResourceDescriptor,
        state: ResourceState,
        config: dict,
        counter: AttemptCounter,
    ) -> ResourceState:
        adapter = self._backends.for_resource(descriptor.kind, descriptor.backend)
        outputs = await call_with_retry(
            lambda: adapter.create(descriptor.id, descriptor.kind, config),
            self._retry,
            counter=counter,
            deployment_id=state.deployment_id,
            resource_id=descriptor.id,
        )
        return transition(
            state,
            ResourceStatus.created,
            outputs=outputs,
            fingerprint=descriptor.fingerprint(),
            attempts=counter.count,
        )

    async def _verify(self, state: ResourceState) -> ResourceState:
        adapter = self._backends.for_resource(state.kind, state.backend)
        outcome = await self._verifier.verify(adapter, state.resource_id, state.kind, state.outputs)

        if outcome.healthy and state.status == ResourceStatus.verify_failed:
            state = transition(state, ResourceStatus.created)
            await self._store.put(state)
        elif not outcome.healthy:
            if state.status == ResourceStatus.created:
                state = transition(state, ResourceStatus.verify_failed, error=outcome.detail)
            else:
                state = state.model_copy(update={"error": outcome.detail})
            await self._store.put(state)
        return state


class _ApplyRun:
    """State for one apply invocation: settle events and final states."""

    def __init__(
        self,
        *,
        engine: ExecutionEngine,
        plan: DeploymentPlan,
        deployment_id: str,
        states: Dict[str, ResourceState],
        result: ApplyResult,
        semaphore: asyncio.Semaphore,
    ) -> None:
        self.engine = engine
        self.plan = plan
        self.deployment_id = deployment_id
        self.states = states
        self.result = result
        self.semaphore = semaphore
        self.settled: Dict[str, asyncio.Event] = {rid: asyncio.Event() for rid in plan.ids}

    async def execute(self) -> None:
        tasks = [asyncio.ensure_future(self._run(descriptor)) for descriptor in self.plan]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run(self, descriptor: ResourceDescriptor) -> None:
        try:
            await self._process(descriptor)
        finally:
            self.settled[descriptor.id].set()

    async def _process(self, descriptor: ResourceDescriptor) -> None:
        log = logger.bind(deployment_id=self.deployment_id, resource_id=descriptor.id)
        dependencies = self.plan.dependencies(descriptor.id)
        for dependency in dependencies:
            await self.settled[dependency].wait()

        unusable = [
            dep for dep in dependencies if self.states[dep].status not in USABLE_STATUSES
        ]
        if unusable:
            if self.engine.cancelled and all(dep in self.result.cancelled for dep in unusable):
                self.result.cancelled.append(descriptor.id)
                log.info("resource_cancelled", status=self.states[descriptor.id].status.value)
            else:
                self.result.blocked[descriptor.id] = unusable
                log.warning("resource_blocked", blocked_by=unusable)
            return

        state = self.states[descriptor.id]
        fingerprint = descriptor.fingerprint()
        if state.status in USABLE_STATUSES and state.fingerprint == fingerprint:
            await self._reuse(descriptor, state)
            return

        async with self.semaphore:
            if self.engine.cancelled:
                self.result.cancelled.append(descriptor.id)
                log.info("resource_cancelled", status=state.status.value)
                return
            await self._provision(descriptor, state, log)

    async def _reuse(self, descriptor: ResourceDescriptor, state: ResourceState) -> None:
        self.result.unchanged.append(descriptor.id)
        if state.status == ResourceStatus.verify_failed:
            async with self.semaphore:
                state = await self.engine._verify(state)
            self.states[descriptor.id] = state
            if state.status == ResourceStatus.verify_failed:
                self.result.verify_failed[descriptor.id] = state.error or "unhealthy"
        logger.debug(
            "resource_unchanged",
            deployment_id=self.deployment_id,
            resource_id=descriptor.id,
            status=state.status.value,
        )

    async def _provision(
        self,
        descriptor: ResourceDescriptor,
        state: ResourceState,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        engine = self.engine
        state = transition(state, ResourceStatus.creating, attempts=0)
        await engine._store.put(state)
        self.states[descriptor.id] = state
        log.info("resource_creating", kind=descriptor.kind.value)

        counter = AttemptCounter()
        try:
            substitutor = OutputSubstitutor(
                {dep: self.states[dep].outputs for dep in descriptor.depends_on}
            )
            config = substitutor.resolve(descriptor.id, descriptor.config)
            state = await engine._create(descriptor, state, config, counter)
        except StateStoreError:
            raise
        except (BackendError, ConfigurationError) as exc:
            await self._fail(
                descriptor, state, exc.message, log, attempts=counter.count, error_type=type(exc).__name__
            )
            return
        except Exception as exc:
            log.exception("resource_unexpected_error")
            await self._fail(
                descriptor,
                state,
                f"{type(exc).__name__}: {exc}",
                log,
                attempts=counter.count,
                error_type="unexpected",
            )
            return

        await engine._store.put(state)
        self.states[descriptor.id] = state
        self.result.created.append(descriptor.id)
        log.info("resource_created", attempts=state.attempts)

        state = await engine._verify(state)
        self.states[descriptor.id] = state
        if state.status == ResourceStatus.verify_failed:
            self.result.verify_failed[descriptor.id] = state.error or "unhealthy"

    async def _fail(
        self,
        descriptor: ResourceDescriptor,
        state: ResourceState,
        message: str,
        log: structlog.stdlib.BoundLogger,
        *,
        attempts: int,
        error_type: str,
    ) -> None:
        state = transition(state, ResourceStatus.failed, error=message, attempts=attempts)
        await self.engine._store.put(state)
        self.states[descriptor.id] = state
        self.result.failed[descriptor.id] = message
        log.error("resource_failed", error=message, error_type=error_type)

