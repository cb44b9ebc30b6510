"""Execution engine, teardown planner and their result types."""

from stratum.engine.executor import ExecutionEngine
from stratum.engine.results import ApplyResult, DestroyResult, VerifyReport
from stratum.engine.retry import RetryPolicy, call_with_retry
from stratum.engine.teardown import TeardownPlanner, plan_teardown

__all__ = [
    "ApplyResult",
    "DestroyResult",
    "ExecutionEngine",
    "RetryPolicy",
    "TeardownPlanner",
    "VerifyReport",
    "call_with_retry",
    "plan_teardown",
]
