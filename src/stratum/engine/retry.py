from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from stratum.config import Settings
from stratum.core.errors import BackendError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to transient backend errors only."""

    max_attempts: int = 5
    multiplier: float = 1.0
    min_wait: float = 1.0
    max_wait: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            multiplier=settings.backoff_multiplier,
            min_wait=settings.backoff_min,
            max_wait=settings.backoff_max,
        )


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BackendError) and exc.retryable


class AttemptCounter:
    """Tracks how many calls a retried operation made."""

    def __init__(self) -> None:
        self.count = 0


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    counter: AttemptCounter | None = None,
    **log_context: object,
) -> T:
    """Run ``operation``, retrying backend errors flagged ``retryable`` per ``policy``.

    Any other exception propagates on the first occurrence.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "backend_retry",
            attempt=retry_state.attempt_number,
            max_attempts=policy.max_attempts,
            error=str(exc),
            **log_context,
        )

    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.multiplier,
            min=policy.min_wait,
            max=policy.max_wait,
        ),
        before_sleep=_before_sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if counter is not None:
                counter.count += 1
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover
