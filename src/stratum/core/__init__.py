"""Core modules for Stratum - centralized definitions and utilities."""

from stratum.core.errors import (
    BackendError,
    ConfigurationError,
    CycleError,
    ExitCode,
    InvalidTransitionError,
    PermanentBackendError,
    StateStoreError,
    StratumError,
    TransientBackendError,
    VerificationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "StratumError",
    "ConfigurationError",
    "CycleError",
    "BackendError",
    "TransientBackendError",
    "PermanentBackendError",
    "VerificationError",
    "InvalidTransitionError",
    "StateStoreError",
    "main_with_error_handling",
    "format_error_message",
]
