"""
Unified error handling for Stratum.

Defines the error taxonomy shared by the planner, engine and adapters,
plus exit codes and the CLI error-handling decorator.

Exit Codes:
- 0: Success
- 1: Warning (applied, but some resources failed verification)
- 2: Partial failure (some resources failed, blocked or were cancelled)
- 3: Total failure (nothing succeeded)
- 10: Configuration error (malformed spec, cycle, bad reference)
- 11: Backend error (external control plane failure)
- 127: Unknown/internal error
- 130: Interrupted (Ctrl-C)
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    PARTIAL_FAILURE = 2
    TOTAL_FAILURE = 3
    CONFIG_ERROR = 10
    BACKEND_ERROR = 11
    UNKNOWN_ERROR = 127
    INTERRUPTED = 130


class StratumError(Exception):
    """Base exception for Stratum errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StratumError):
    """Raised for malformed descriptors and unresolved references."""

    exit_code = ExitCode.CONFIG_ERROR


class CycleError(ConfigurationError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        path = " -> ".join([*self.cycle, self.cycle[0]]) if self.cycle else "?"
        super().__init__(
            f"Dependency cycle detected: {path}",
            details={"cycle": ",".join(self.cycle)},
        )


class BackendError(StratumError):
    """Raised when an external provisioning backend fails."""

    exit_code = ExitCode.BACKEND_ERROR
    retryable: bool = False


class TransientBackendError(BackendError):
    """Timeouts, throttling and other failures worth retrying."""

    retryable = True


class PermanentBackendError(BackendError):
    """Authorization, quota and invalid-parameter failures. Never retried."""


class VerificationError(StratumError):
    """Raised inside the verifier when a health check fails; recorded, never fatal."""

    exit_code = ExitCode.WARNING


class InvalidTransitionError(StratumError):
    """Raised when a resource lifecycle transition is not permitted."""


class StateStoreError(StratumError):
    """Raised when the state store cannot read or persist a record."""


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - StratumError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except StratumError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                _print_error(format_error_message(e))
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return ExitCode.INTERRUPTED
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                _print_error(f"Unexpected error: {e}")
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: StratumError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def _print_error(message: str) -> None:
    from stratum.cli.ux import error as print_error

    print_error(message)
