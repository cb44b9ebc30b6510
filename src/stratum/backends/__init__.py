"""Backend adapters and built-in registrations."""

# Import built-in backends for side effects (registration)
from stratum.backends import command as _command  # noqa: F401
from stratum.backends import http as _http  # noqa: F401
from stratum.backends import local as _local  # noqa: F401
from stratum.backends.base import BackendAdapter, BackendHealth, VerifyResult
from stratum.backends.registry import (
    BackendPool,
    backend_registry,
    create_backend,
    list_backends,
    register_backend,
)

__all__ = [
    "BackendAdapter",
    "BackendHealth",
    "BackendPool",
    "VerifyResult",
    "backend_registry",
    "create_backend",
    "list_backends",
    "register_backend",
]
