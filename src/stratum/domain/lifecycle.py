"""Resource lifecycle state machine shared by apply and teardown."""

from __future__ import annotations

from typing import Any, Mapping

from stratum.core.errors import InvalidTransitionError
from stratum.domain.models import ResourceState, ResourceStatus, utcnow

S = ResourceStatus

ALLOWED_TRANSITIONS: dict[ResourceStatus, frozenset[ResourceStatus]] = {
    S.pending: frozenset({S.creating}),
    S.creating: frozenset({S.created, S.failed}),
    # Creating again re-applies a drifted configuration.
    S.created: frozenset({S.deleting, S.verify_failed, S.creating}),
    S.verify_failed: frozenset({S.created, S.deleting, S.creating}),
    S.deleting: frozenset({S.deleted, S.failed}),
    S.failed: frozenset({S.creating, S.deleting}),
    S.deleted: frozenset(),
}

# Dependencies in these states satisfy their dependents.
USABLE_STATUSES = frozenset({S.created, S.verify_failed})

IN_PROGRESS_OPERATION = {S.creating: "create", S.deleting: "delete"}


def can_transition(current: ResourceStatus, target: ResourceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    state: ResourceState,
    target: ResourceStatus,
    *,
    error: str | None = None,
    outputs: Mapping[str, Any] | None = None,
    fingerprint: str | None = None,
    attempts: int | None = None,
) -> ResourceState:
    """Return a copy of ``state`` moved to ``target``.

    Raises InvalidTransitionError when the move is not part of the lifecycle.
    """
    if not can_transition(state.status, target):
        raise InvalidTransitionError(
            f"Cannot move '{state.resource_id}' from {state.status} to {target}",
            details={"deployment_id": state.deployment_id, "resource_id": state.resource_id},
        )

    update: dict[str, Any] = {
        "status": target,
        "error": error,
        "updated_at": utcnow(),
    }
    if target in IN_PROGRESS_OPERATION:
        update["last_operation"] = IN_PROGRESS_OPERATION[target]
    if outputs is not None:
        update["outputs"] = dict(outputs)
    if fingerprint is not None:
        update["fingerprint"] = fingerprint
    if attempts is not None:
        update["attempts"] = attempts
    return state.model_copy(update=update)
