from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

import structlog

from stratum.backends.base import BackendAdapter
from stratum.core.errors import ConfigurationError
from stratum.domain.models import ResourceKind
from stratum.secrets import SecretHandle, SecretMaterial

logger = structlog.get_logger()

BackendFactory = Callable[..., BackendAdapter]

DEFAULT_BACKEND = "local"


@dataclass(frozen=True)
class BackendSpec:
    """Metadata describing a registered backend adapter."""

    name: str
    factory: BackendFactory
    description: str | None = None


class BackendRegistry:
    """In-memory registry of backend adapter factories."""

    def __init__(self) -> None:
        self._backends: Dict[str, BackendSpec] = {}
        self._kind_defaults: Dict[ResourceKind, str] = {}

    def register(
        self,
        name: str,
        factory: BackendFactory,
        *,
        description: str | None = None,
    ) -> None:
        if not name:
            raise ValueError("Backend name is required")
        self._backends[name] = BackendSpec(name=name, factory=factory, description=description)

    def set_default(self, kind: ResourceKind, name: str) -> None:
        self._kind_defaults[kind] = name

    def default_for(self, kind: ResourceKind) -> str:
        return self._kind_defaults.get(kind, DEFAULT_BACKEND)

    def create(self, name: str, **kwargs: Any) -> BackendAdapter:
        spec = self._backends.get(name)
        if spec is None:
            raise ConfigurationError(
                f"Backend '{name}' is not registered",
                details={"backend": name},
            )
        return spec.factory(**kwargs)

    def list(self) -> List[BackendSpec]:
        return list(self._backends.values())

    def __contains__(self, name: object) -> bool:
        return name in self._backends


backend_registry = BackendRegistry()


def register_backend(
    name: str,
    factory: BackendFactory,
    *,
    description: str | None = None,
) -> None:
    backend_registry.register(name, factory, description=description)


def create_backend(name: str, **kwargs: Any) -> BackendAdapter:
    return backend_registry.create(name, **kwargs)


def list_backends() -> List[BackendSpec]:
    return backend_registry.list()


class BackendPool:
    """Adapters instantiated for one deployment, created on first use.

    Also routes secret handles to the adapter that issued them, so an
    adapter consuming another adapter's secret can resolve it at the point
    of use.
    """

    def __init__(
        self,
        *,
        registry: BackendRegistry | None = None,
        overrides: Dict[str, BackendAdapter] | None = None,
        **factory_kwargs: Any,
    ) -> None:
        self._registry = registry or backend_registry
        self._adapters: Dict[str, BackendAdapter] = dict(overrides or {})
        self._factory_kwargs = factory_kwargs

    def name_for(self, kind: ResourceKind, backend: str | None) -> str:
        return backend or self._registry.default_for(kind)

    def get(self, name: str) -> BackendAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            adapter = self._registry.create(
                name,
                secret_resolver=self.resolve_secret,
                **self._factory_kwargs,
            )
            self._adapters[name] = adapter
            logger.debug("backend_initialized", backend=name)
        return adapter

    def for_resource(self, kind: ResourceKind, backend: str | None = None) -> BackendAdapter:
        return self.get(self.name_for(kind, backend))

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        parsed = SecretHandle.parse(handle)
        return await self.get(parsed.backend).resolve_secret(handle)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
