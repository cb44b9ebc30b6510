"""Secret handles and in-memory secret material.

The orchestrator core only ever sees opaque handles of the form
``secret://<backend>/<resource_id>/<name>``. The adapter that produced a
secret is the only component that can turn a handle back into material.
"""

from __future__ import annotations

from dataclasses import dataclass
from secrets import compare_digest, token_urlsafe
from typing import Any

import structlog

from stratum.core.errors import PermanentBackendError

logger = structlog.get_logger()

HANDLE_SCHEME = "secret://"


class SecretMaterial:
    """Sensitive value that never renders itself in logs or reprs."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "SecretMaterial('**********')"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretMaterial):
            return NotImplemented
        return compare_digest(self._value, other._value)

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass(frozen=True)
class SecretHandle:
    """Parsed form of an opaque secret reference."""

    backend: str
    resource_id: str
    name: str

    def __str__(self) -> str:
        return f"{HANDLE_SCHEME}{self.backend}/{self.resource_id}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "SecretHandle":
        if not is_secret_handle(value):
            raise ValueError(f"Not a secret handle: {value!r}")
        parts = value[len(HANDLE_SCHEME):].split("/", 2)
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Malformed secret handle: {value!r}")
        return cls(backend=parts[0], resource_id=parts[1], name=parts[2])


def is_secret_handle(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(HANDLE_SCHEME)


def generate_secret(length: int = 32) -> SecretMaterial:
    return SecretMaterial(token_urlsafe(length))


class SecretVault:
    """Per-adapter store of secret material keyed by handle."""

    def __init__(self, backend: str) -> None:
        self._backend = backend
        self._material: dict[str, SecretMaterial] = {}

    def issue(self, resource_id: str, name: str, material: SecretMaterial) -> str:
        handle = str(SecretHandle(self._backend, resource_id, name))
        self._material[handle] = material
        logger.debug("secret_issued", handle=handle)
        return handle

    def resolve(self, handle: str) -> SecretMaterial:
        parsed = SecretHandle.parse(handle)
        if parsed.backend != self._backend:
            raise PermanentBackendError(
                f"Secret handle belongs to backend '{parsed.backend}'",
                details={"handle": handle},
            )
        material = self._material.get(handle)
        if material is None:
            raise PermanentBackendError("Unknown secret handle", details={"handle": handle})
        return material

    def revoke_resource(self, resource_id: str) -> None:
        prefix = f"{HANDLE_SCHEME}{self._backend}/{resource_id}/"
        for handle in [h for h in self._material if h.startswith(prefix)]:
            del self._material[handle]

    def __contains__(self, handle: object) -> bool:
        return handle in self._material
