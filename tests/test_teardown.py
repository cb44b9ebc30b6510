"""Tests for reverse-dependency teardown."""

import pytest
from conftest import NO_WAIT, descriptor

from stratum.core.errors import ExitCode, PermanentBackendError, TransientBackendError
from stratum.domain.lifecycle import transition
from stratum.domain.models import ResourceState, ResourceStatus
from stratum.engine.teardown import TeardownPlanner, plan_teardown
from stratum.planning.graph import build_plan

DEPLOYMENT = "dep1"


def scenario(extra=()):
    return build_plan(
        [
            descriptor("network", "Network"),
            descriptor("database", "Database", deps=["network"]),
            descriptor("cluster", "ComputeCluster", deps=["network"]),
            descriptor("service", "AIService", deps=["database", "cluster"]),
            *extra,
        ]
    )


class TestPlanTeardown:
    def test_dependents_first(self):
        plan = scenario()
        states = [
            ResourceState.pending_for(DEPLOYMENT, d, plan.position(d.id)).model_copy(
                update={"status": ResourceStatus.created}
            )
            for d in plan
        ]

        order = [s.resource_id for s in plan_teardown(states)]

        assert order[0] == "service"
        assert order[-1] == "network"
        assert order.index("database") < order.index("network")
        assert order.index("cluster") < order.index("network")

    def test_skips_deleted_and_dangling_edges(self):
        plan = scenario()
        states = [
            ResourceState.pending_for(DEPLOYMENT, plan.get("service"), 3),
            ResourceState.pending_for(DEPLOYMENT, plan.get("network"), 0).model_copy(
                update={"status": ResourceStatus.deleted}
            ),
        ]
        assert [s.resource_id for s in plan_teardown(states)] == ["service"]


class TestDestroy:
    """Tests for TeardownPlanner.destroy."""

    @pytest.mark.asyncio
    async def test_reverse_order_and_records_removed(self, engine, teardown, store, fake_backend):
        await engine.apply(scenario(), DEPLOYMENT)
        fake_backend.calls.clear()

        result = await teardown.destroy(DEPLOYMENT)

        deletes = fake_backend.deletes()
        assert deletes[0] == "service"
        assert deletes[-1] == "network"
        assert sorted(result.deleted) == ["cluster", "database", "network", "service"]
        assert result.outcome == "success"
        assert result.exit_code == ExitCode.SUCCESS
        assert await store.list(DEPLOYMENT) == []
        assert fake_backend.resources == set()

    @pytest.mark.asyncio
    async def test_retain_deleted_keeps_audit_records(self, engine, store, pool):
        await engine.apply(scenario(), DEPLOYMENT)
        planner = TeardownPlanner(store, pool, retry=NO_WAIT, retain_deleted=True)

        await planner.destroy(DEPLOYMENT)

        states = await store.list(DEPLOYMENT)
        assert {s.status for s in states} == {ResourceStatus.deleted}
        # A second destroy has nothing left to do
        again = await planner.destroy(DEPLOYMENT)
        assert again.order == []

    @pytest.mark.asyncio
    async def test_pending_removed_without_backend_call(self, engine, teardown, store, fake_backend):
        fake_backend.create_errors["database"] = [PermanentBackendError("quota exceeded")]
        await engine.apply(scenario(), DEPLOYMENT)
        fake_backend.calls.clear()

        result = await teardown.destroy(DEPLOYMENT)

        assert result.removed == ["service"]
        assert "service" not in fake_backend.deletes()
        # The failed database is still cleaned up through the adapter
        assert "database" in result.deleted
        assert result.success
        assert await store.list(DEPLOYMENT) == []

    @pytest.mark.asyncio
    async def test_failure_blocks_only_dependencies(self, engine, teardown, store, fake_backend):
        await engine.apply(scenario(extra=[descriptor("registry", "Registry")]), DEPLOYMENT)
        fake_backend.delete_errors["service"] = [PermanentBackendError("locked")]

        result = await teardown.destroy(DEPLOYMENT)

        assert result.failed == {"service": "locked"}
        assert result.blocked == {
            "cluster": ["service"],
            "database": ["service"],
            "network": ["cluster", "database"],
        }
        assert result.deleted == ["registry"]
        assert result.outcome == "partial"
        assert result.exit_code == ExitCode.PARTIAL_FAILURE
        service = await store.get(DEPLOYMENT, "service")
        assert service.status == ResourceStatus.failed
        assert service.error == "locked"
        assert (await store.get(DEPLOYMENT, "network")).status == ResourceStatus.created

    @pytest.mark.asyncio
    async def test_rerun_retries_only_remaining(self, engine, teardown, store, fake_backend):
        await engine.apply(scenario(extra=[descriptor("registry", "Registry")]), DEPLOYMENT)
        fake_backend.delete_errors["service"] = [PermanentBackendError("locked")]
        await teardown.destroy(DEPLOYMENT)
        fake_backend.calls.clear()

        result = await teardown.destroy(DEPLOYMENT)

        assert "registry" not in fake_backend.deletes()
        assert sorted(result.deleted) == ["cluster", "database", "network", "service"]
        assert result.success

    @pytest.mark.asyncio
    async def test_transient_delete_retried(self, engine, teardown, store, fake_backend):
        await engine.apply(build_plan([descriptor("net")]), DEPLOYMENT)
        fake_backend.delete_errors["net"] = [TransientBackendError("busy")]

        result = await teardown.destroy(DEPLOYMENT)

        assert result.deleted == ["net"]
        assert fake_backend.deletes() == ["net", "net"]

    @pytest.mark.asyncio
    async def test_interrupted_records_deleted_through_adapter(self, teardown, store, fake_backend):
        plan = build_plan([descriptor("a"), descriptor("b")])
        creating = transition(ResourceState.pending_for(DEPLOYMENT, plan.get("a"), 0), ResourceStatus.creating)
        created = transition(
            transition(ResourceState.pending_for(DEPLOYMENT, plan.get("b"), 1), ResourceStatus.creating),
            ResourceStatus.created,
        )
        await store.put(creating)
        await store.put(transition(created, ResourceStatus.deleting))

        result = await teardown.destroy(DEPLOYMENT)

        assert sorted(result.deleted) == ["a", "b"]
        assert sorted(fake_backend.deletes()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, engine, teardown, fake_backend):
        await engine.apply(scenario(), DEPLOYMENT)
        fake_backend.calls.clear()
        teardown.cancel()

        result = await teardown.destroy(DEPLOYMENT)

        assert fake_backend.deletes() == []
        assert sorted(result.cancelled) == ["cluster", "database", "network", "service"]
        assert result.blocked == {}
        assert result.outcome == "failed"

    @pytest.mark.asyncio
    async def test_empty_deployment(self, teardown):
        result = await teardown.destroy("nothing-here")
        assert result.order == []
        assert result.success
