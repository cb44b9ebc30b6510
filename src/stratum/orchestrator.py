"""
Deployment orchestrator.

Ties the specification loader, graph builder, execution engine, teardown
planner and state store together behind one object per deployment.

Usage:
    orchestrator = Orchestrator(Path("deploy.yaml"), "prod", settings)
    try:
        result = await orchestrator.apply()
    finally:
        await orchestrator.close()
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import structlog

from stratum.backends import BackendAdapter, BackendPool
from stratum.config import Settings, get_settings
from stratum.core.errors import ConfigurationError
from stratum.domain.models import ResourceState
from stratum.engine.executor import ExecutionEngine
from stratum.engine.results import ApplyResult, DestroyResult, VerifyReport
from stratum.engine.retry import RetryPolicy
from stratum.engine.teardown import TeardownPlanner
from stratum.planning.diff import PlanPreview, diff_plan
from stratum.planning.graph import DeploymentPlan, build_plan
from stratum.specs.loader import DeploymentSpec, load_deployment_spec
from stratum.state import StateStore, create_state_store
from stratum.state.base import sort_states
from stratum.verification.verifier import Verifier

logger = structlog.get_logger()


class Orchestrator:
    """Runs plan/apply/status/destroy/verify for one deployment."""

    def __init__(
        self,
        spec_path: Path | str | None,
        deployment_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        *,
        store: Optional[StateStore] = None,
        backends: Optional[Dict[str, BackendAdapter]] = None,
    ):
        self.spec_path = Path(spec_path) if spec_path is not None else None
        self.settings = settings or get_settings()
        self._deployment_id = deployment_id
        self._spec: Optional[DeploymentSpec] = None
        self._store = store
        self._backend_overrides = backends
        self._pool: Optional[BackendPool] = None
        self._engine: Optional[ExecutionEngine] = None
        self._teardown: Optional[TeardownPlanner] = None
        self._cancelled = False

    @property
    def deployment_id(self) -> str:
        if self._deployment_id is None:
            spec = self.load_spec()
            if not spec.deployment:
                raise ConfigurationError(
                    "No deployment id given and the spec declares no 'deployment'",
                    details={"spec": str(self.spec_path)},
                )
            self._deployment_id = spec.deployment
        return self._deployment_id

    @property
    def store(self) -> StateStore:
        if self._store is None:
            self._store = create_state_store(self.settings)
        return self._store

    @property
    def backends(self) -> BackendPool:
        if self._pool is None:
            self._pool = BackendPool(
                overrides=self._backend_overrides,
                settings=self.settings,
                deployment_id=self.deployment_id,
            )
        return self._pool

    def load_spec(self) -> DeploymentSpec:
        if self._spec is None:
            if self.spec_path is None:
                raise ConfigurationError("A deployment spec file is required for this command")
            self._spec = load_deployment_spec(self.spec_path, deployment_id=self._deployment_id)
        return self._spec

    def build_plan(self) -> DeploymentPlan:
        """Load the spec and order it; raises CycleError before any backend call."""
        return build_plan(self.load_spec().descriptors)

    async def plan(self) -> PlanPreview:
        """Preview what apply would do. Never writes state."""
        plan = self.build_plan()
        states = await self.store.list(self.deployment_id)
        return diff_plan(plan, states, deployment_id=self.deployment_id)

    async def apply(self) -> ApplyResult:
        plan = self.build_plan()
        engine = ExecutionEngine(
            self.store,
            self.backends,
            verifier=self._verifier(),
            retry=RetryPolicy.from_settings(self.settings),
            max_workers=self.settings.max_workers,
        )
        self._engine = engine
        if self._cancelled:
            engine.cancel()
        return await engine.apply(plan, self.deployment_id)

    async def status(self) -> List[ResourceState]:
        return sort_states(await self.store.list(self.deployment_id))

    async def destroy(self, dry_run: bool = False) -> DestroyResult:
        planner = TeardownPlanner(
            self.store,
            self.backends,
            retry=RetryPolicy.from_settings(self.settings),
            max_workers=self.settings.max_workers,
            retain_deleted=self.settings.retain_deleted,
        )
        self._teardown = planner
        if self._cancelled:
            planner.cancel()

        if dry_run:
            ordered = await planner.plan(self.deployment_id)
            return DestroyResult(
                deployment_id=self.deployment_id,
                order=[state.resource_id for state in ordered],
            )
        return await planner.destroy(self.deployment_id)

    async def verify(self) -> VerifyReport:
        engine = ExecutionEngine(
            self.store,
            self.backends,
            verifier=self._verifier(),
            max_workers=self.settings.max_workers,
        )
        return await engine.reverify(self.deployment_id)

    def cancel(self) -> None:
        """Request cooperative cancellation of a running apply or destroy."""
        self._cancelled = True
        for runner in (self._engine, self._teardown):
            if runner is not None:
                runner.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.aclose()
        if self._store is not None:
            await self._store.close()

    def _verifier(self) -> Verifier:
        return Verifier(
            timeout=self.settings.verify_timeout,
            network_probes=self.settings.network_probes,
        )


__all__ = ["Orchestrator"]
