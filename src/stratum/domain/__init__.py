"""Resource descriptor model and lifecycle."""

from stratum.domain.lifecycle import (
    ALLOWED_TRANSITIONS,
    USABLE_STATUSES,
    can_transition,
    transition,
)
from stratum.domain.models import (
    ResourceDescriptor,
    ResourceKind,
    ResourceState,
    ResourceStatus,
    Scalar,
    compute_fingerprint,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "USABLE_STATUSES",
    "ResourceDescriptor",
    "ResourceKind",
    "ResourceState",
    "ResourceStatus",
    "Scalar",
    "can_transition",
    "compute_fingerprint",
    "transition",
]
