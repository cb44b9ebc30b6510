"""
Local simulated control plane.

Persists every resource as a JSON file under
``<local_backend_dir>/<deployment_id>/`` and produces the same kind of
outputs a cloud control plane would (endpoints, identifiers and secret
handles). Secret material lives in a separate ``.secrets`` directory owned
by this adapter, never in the state store.

Fault injection config keys (useful for rehearsing failure handling):
- ``_fail``: ``permanent`` or ``transient``
- ``_fail_times``: with ``_fail: transient``, fail this many calls then succeed
- ``_unhealthy``: make ``verify`` report the resource as unhealthy
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

import structlog

from stratum.backends.base import BackendHealth, VerifyResult
from stratum.backends.registry import register_backend
from stratum.config import Settings, get_settings
from stratum.core.errors import (
    BackendError,
    ConfigurationError,
    PermanentBackendError,
    TransientBackendError,
)
from stratum.domain.models import ResourceKind
from stratum.secrets import SecretHandle, SecretMaterial, SecretVault, generate_secret

logger = structlog.get_logger()

SecretResolver = Callable[[str], Awaitable[SecretMaterial]]


class LocalBackend:
    """File-backed stand-in for a cloud control plane."""

    name = "local"

    def __init__(
        self,
        root: Path,
        deployment_id: str,
        *,
        secret_resolver: SecretResolver | None = None,
    ) -> None:
        self._dir = Path(root) / deployment_id
        self._secret_dir = self._dir / ".secrets"
        self._vault = SecretVault(self.name)
        self._secret_resolver = secret_resolver
        self._failures: dict[str, int] = {}

    async def create(
        self,
        resource_id: str,
        kind: ResourceKind,
        config: Mapping[str, Any],
    ) -> dict[str, Any]:
        self._maybe_fail(resource_id, config)

        existing = self._read(resource_id)
        secrets = await self._ensure_secrets(resource_id, kind, config)
        outputs = _outputs_for(resource_id, kind, config)
        outputs.update(secrets)

        document = {
            "id": resource_id,
            "kind": kind.value,
            "config": dict(config),
            "outputs": outputs,
        }
        await asyncio.to_thread(self._write, resource_id, document)
        logger.info(
            "local_resource_upserted",
            resource_id=resource_id,
            kind=kind.value,
            existed=existing is not None,
        )
        return outputs

    async def delete(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> None:
        path = self._path(resource_id)
        document = self._read(resource_id)
        if document is not None:
            self._maybe_fail(resource_id, document.get("config", {}), operation="delete")
        path.unlink(missing_ok=True)
        for secret_file in self._secret_dir.glob(f"{resource_id}.*"):
            secret_file.unlink(missing_ok=True)
        self._vault.revoke_resource(resource_id)

    async def verify(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        document = self._read(resource_id)
        if document is None:
            return VerifyResult(healthy=False, detail="resource not found")
        if _truthy(document.get("config", {}).get("_unhealthy")):
            return VerifyResult(healthy=False, detail="health probe reported unhealthy")
        for key, value in document.get("config", {}).items():
            if isinstance(value, str) and value.startswith("secret://"):
                try:
                    await self._resolve(value)
                except (BackendError, ConfigurationError) as exc:
                    return VerifyResult(healthy=False, detail=f"{key}: {exc.message}")
                except ValueError as exc:
                    return VerifyResult(healthy=False, detail=f"{key}: {exc}")
        return VerifyResult(healthy=True, detail="ok")

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        if handle in self._vault:
            return self._vault.resolve(handle)
        parsed = SecretHandle.parse(handle)
        path = self._secret_dir / f"{parsed.resource_id}.{parsed.name}"
        if parsed.backend != self.name or not path.exists():
            raise PermanentBackendError("Unknown secret handle", details={"handle": handle})
        material = SecretMaterial(path.read_text())
        self._vault.issue(parsed.resource_id, parsed.name, material)
        return material

    async def health_check(self) -> BackendHealth:
        return BackendHealth(status="healthy", details=str(self._dir))

    async def aclose(self) -> None:
        return None

    async def _resolve(self, handle: str) -> SecretMaterial:
        if self._secret_resolver is not None:
            return await self._secret_resolver(handle)
        return await self.resolve_secret(handle)

    async def _ensure_secrets(
        self,
        resource_id: str,
        kind: ResourceKind,
        config: Mapping[str, Any],
    ) -> dict[str, str]:
        names = _SECRET_OUTPUTS.get(kind, ())
        handles: dict[str, str] = {}
        for name in names:
            handle = str(SecretHandle(self.name, resource_id, name))
            try:
                await self.resolve_secret(handle)
            except PermanentBackendError:
                material = _initial_secret(kind, config)
                self._store_secret(resource_id, name, material)
                self._vault.issue(resource_id, name, material)
            handles[name] = handle
        return handles

    def _store_secret(self, resource_id: str, name: str, material: SecretMaterial) -> None:
        self._secret_dir.mkdir(parents=True, exist_ok=True)
        path = self._secret_dir / f"{resource_id}.{name}"
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(material.reveal())

    def _maybe_fail(
        self,
        resource_id: str,
        config: Mapping[str, Any],
        *,
        operation: str = "create",
    ) -> None:
        mode = config.get("_fail")
        target = config.get("_fail_on", "create")
        if not mode or target != operation:
            return
        if mode == "permanent":
            raise PermanentBackendError(
                f"Simulated permanent failure for '{resource_id}'",
                details={"resource_id": resource_id},
            )
        if mode == "transient":
            key = f"{operation}:{resource_id}"
            seen = self._failures.get(key, 0)
            limit = config.get("_fail_times")
            if limit is None or seen < int(limit):
                self._failures[key] = seen + 1
                raise TransientBackendError(
                    f"Simulated throttling for '{resource_id}'",
                    details={"resource_id": resource_id},
                )

    def _path(self, resource_id: str) -> Path:
        return self._dir / f"{resource_id}.json"

    def _read(self, resource_id: str) -> dict[str, Any] | None:
        path = self._path(resource_id)
        if not path.exists():
            return None
        return json.loads(path.read_text())

    def _write(self, resource_id: str, document: dict[str, Any]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(resource_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, indent=2, sort_keys=True) + "\n")
        os.replace(tmp, path)


_SECRET_OUTPUTS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.database: ("admin_password",),
    ResourceKind.ai_service: ("api_key",),
    ResourceKind.registry: ("pull_token",),
    ResourceKind.secret: ("value",),
}


def _initial_secret(kind: ResourceKind, config: Mapping[str, Any]) -> SecretMaterial:
    if kind == ResourceKind.secret and config.get("value") is not None:
        return SecretMaterial(str(config["value"]))
    return generate_secret()


def _outputs_for(resource_id: str, kind: ResourceKind, config: Mapping[str, Any]) -> dict[str, Any]:
    name = str(config.get("name") or resource_id)
    digest = hashlib.sha256(resource_id.encode()).digest()

    if kind == ResourceKind.network:
        return {
            "network_id": f"net-{digest.hex()[:12]}",
            "subnet_id": f"subnet-{digest.hex()[12:24]}",
            "address_prefix": config.get("address_prefix", "10.0.0.0/16"),
        }
    if kind == ResourceKind.registry:
        return {"registry_id": f"reg-{digest.hex()[:12]}", "login_server": f"{name}.registry.local"}
    if kind == ResourceKind.database:
        host = f"{name}.db.local"
        port = int(config.get("port", 5432))
        return {
            "host": host,
            "port": port,
            "endpoint": f"{host}:{port}",
            "admin_user": config.get("admin_user", "dbadmin"),
        }
    if kind == ResourceKind.compute_cluster:
        return {"cluster_id": f"aks-{digest.hex()[:12]}", "api_server": f"https://{name}.k8s.local:6443"}
    if kind == ResourceKind.ai_service:
        return {"endpoint": f"https://{name}.ai.local", "model": config.get("model", "default")}
    if kind == ResourceKind.gateway:
        public_ip = f"10.{digest[0]}.{digest[1]}.{digest[2]}"
        return {"public_ip": public_ip, "endpoint": f"http://{public_ip}"}
    return {"secret_name": name}


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _factory(
    *,
    deployment_id: str,
    settings: Settings | None = None,
    secret_resolver: SecretResolver | None = None,
    **_: Any,
) -> LocalBackend:
    cfg = settings or get_settings()
    return LocalBackend(cfg.local_backend_dir, deployment_id, secret_resolver=secret_resolver)


register_backend(
    LocalBackend.name,
    _factory,
    description="Simulated control plane persisted to local JSON files",
)

__all__ = ["LocalBackend"]
