"""Dependency graph construction and plan previews."""

from stratum.planning.diff import PlanChange, PlanPreview, diff_plan
from stratum.planning.graph import DeploymentPlan, build_plan, find_cycle, topological_order

__all__ = [
    "DeploymentPlan",
    "PlanChange",
    "PlanPreview",
    "build_plan",
    "diff_plan",
    "find_cycle",
    "topological_order",
]
