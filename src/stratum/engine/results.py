"""Result types for apply, destroy and verify runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

from stratum.core.errors import ExitCode

Outcome = Literal["success", "warning", "partial", "failed"]

_EXIT_CODES: dict[str, ExitCode] = {
    "success": ExitCode.SUCCESS,
    "warning": ExitCode.WARNING,
    "partial": ExitCode.PARTIAL_FAILURE,
    "failed": ExitCode.TOTAL_FAILURE,
}


@dataclass
class ApplyResult:
    """Per-resource outcome of an apply run."""

    deployment_id: str
    plan_order: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    blocked: Dict[str, List[str]] = field(default_factory=dict)
    cancelled: List[str] = field(default_factory=list)
    verify_failed: Dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def not_attempted(self) -> List[str]:
        return [rid for rid in self.plan_order if rid in self.blocked or rid in self.cancelled]

    @property
    def succeeded(self) -> List[str]:
        return [rid for rid in self.plan_order if rid in self.created or rid in self.unchanged]

    @property
    def outcome(self) -> Outcome:
        if self.failed or self.blocked or self.cancelled:
            return "partial" if self.succeeded else "failed"
        if self.verify_failed:
            return "warning"
        return "success"

    @property
    def success(self) -> bool:
        return self.outcome in ("success", "warning")

    @property
    def exit_code(self) -> ExitCode:
        return _EXIT_CODES[self.outcome]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "outcome": self.outcome,
            "plan_order": self.plan_order,
            "created": self.created,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "blocked": self.blocked,
            "cancelled": self.cancelled,
            "verify_failed": self.verify_failed,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class DestroyResult:
    """Per-resource outcome of a teardown run."""

    deployment_id: str
    order: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    blocked: Dict[str, List[str]] = field(default_factory=dict)
    cancelled: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def outcome(self) -> Outcome:
        if self.failed or self.blocked or self.cancelled:
            return "partial" if (self.deleted or self.removed) else "failed"
        return "success"

    @property
    def success(self) -> bool:
        return self.outcome == "success"

    @property
    def exit_code(self) -> ExitCode:
        return _EXIT_CODES[self.outcome]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "outcome": self.outcome,
            "order": self.order,
            "deleted": self.deleted,
            "removed": self.removed,
            "failed": self.failed,
            "blocked": self.blocked,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class VerifyReport:
    """Outcome of re-verifying every provisioned resource."""

    deployment_id: str
    healthy: Dict[str, str] = field(default_factory=dict)
    unhealthy: Dict[str, str] = field(default_factory=dict)

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.WARNING if self.unhealthy else ExitCode.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "healthy": self.healthy,
            "unhealthy": self.unhealthy,
        }
