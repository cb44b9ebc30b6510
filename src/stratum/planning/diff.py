"""Read-only preview of what ``apply`` would do for a plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

from stratum.domain.models import ResourceState, ResourceStatus
from stratum.planning.graph import DeploymentPlan

ChangeAction = Literal["create", "update", "retry", "verify", "noop", "orphan"]


@dataclass(frozen=True)
class PlanChange:
    """Represents a single change detected during planning."""

    action: ChangeAction
    resource_id: str
    kind: str
    reason: str = ""
    dependencies: tuple[str, ...] = ()


@dataclass
class PlanPreview:
    """Plan result summarising pending changes."""

    deployment_id: str
    changes: list[PlanChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(change.action != "noop" for change in self.changes)

    def by_action(self, action: ChangeAction) -> list[PlanChange]:
        return [change for change in self.changes if change.action == action]

    def counts(self) -> dict[str, int]:
        result: dict[str, int] = {}
        for change in self.changes:
            result[change.action] = result.get(change.action, 0) + 1
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "has_changes": self.has_changes,
            "counts": self.counts(),
            "changes": [
                {
                    "action": c.action,
                    "resource_id": c.resource_id,
                    "kind": c.kind,
                    "reason": c.reason,
                    "depends_on": list(c.dependencies),
                }
                for c in self.changes
            ],
        }


def diff_plan(
    plan: DeploymentPlan,
    states: Iterable[ResourceState],
    *,
    deployment_id: str,
) -> PlanPreview:
    """Compare the plan with recorded state, in plan order."""
    recorded = {state.resource_id: state for state in states}
    preview = PlanPreview(deployment_id=deployment_id)

    for descriptor in plan:
        state = recorded.get(descriptor.id)
        action, reason = _classify(state, descriptor.fingerprint())
        preview.changes.append(
            PlanChange(
                action=action,
                resource_id=descriptor.id,
                kind=descriptor.kind.value,
                reason=reason,
                dependencies=plan.dependencies(descriptor.id),
            )
        )

    for state in sorted(recorded.values(), key=lambda s: (s.position, s.resource_id)):
        if state.resource_id in plan or state.status == ResourceStatus.deleted:
            continue
        preview.changes.append(
            PlanChange(
                action="orphan",
                resource_id=state.resource_id,
                kind=state.kind.value,
                reason=f"recorded as {state.status} but no longer declared",
            )
        )
    return preview


def _classify(state: ResourceState | None, fingerprint: str) -> tuple[ChangeAction, str]:
    if state is None:
        return "create", "not yet provisioned"
    if state.status in (ResourceStatus.pending, ResourceStatus.deleted):
        return "create", f"recorded as {state.status}"
    if state.status == ResourceStatus.failed:
        return "retry", state.error or "previous attempt failed"
    if state.status in (ResourceStatus.creating, ResourceStatus.deleting):
        return "retry", f"interrupted while {state.status}"
    if state.fingerprint != fingerprint:
        return "update", "configuration changed"
    if state.status == ResourceStatus.verify_failed:
        return "verify", state.error or "last verification failed"
    return "noop", "up to date"
