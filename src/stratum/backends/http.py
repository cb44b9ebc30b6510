"""REST control-plane backend built on httpx with a circuit breaker."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

import httpx
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError

from stratum.backends.base import BackendHealth, VerifyResult
from stratum.backends.registry import register_backend
from stratum.config import Settings, get_settings
from stratum.core.errors import (
    ConfigurationError,
    PermanentBackendError,
    TransientBackendError,
)
from stratum.domain.models import ResourceKind
from stratum.secrets import SecretHandle, SecretMaterial, SecretVault, is_secret_handle

logger = structlog.get_logger()

SecretResolver = Callable[[str], Awaitable[SecretMaterial]]

DEFAULT_USER_AGENT = "stratum-backend-http/0.1.0"


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 429, 500, 502, 503, 504)


class HttpBackend:
    """Backend for control planes exposing a resource REST API.

    Routes:
    - ``POST /resources/{kind}`` with ``{"id", "deployment", "config"}``,
      answering ``{"outputs": {...}, "secrets": {...}}``
    - ``DELETE /resources/{kind}/{id}`` (404 counts as deleted)
    - ``GET /resources/{kind}/{id}/health`` answering ``{"healthy", "detail"}``
    - ``GET /secrets/{id}/{name}`` answering ``{"value"}``
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        deployment_id: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        secret_resolver: SecretResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 60,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._deployment_id = deployment_id
        self._token = token
        self._timeout = timeout
        self._user_agent = user_agent
        self._secret_resolver = secret_resolver
        self._transport = transport
        self._vault = SecretVault(self.name)
        breaker = CircuitBreaker(
            failure_threshold=circuit_failure_threshold,
            recovery_timeout=circuit_recovery_timeout,
            expected_exception=TransientBackendError,
        )
        self._guarded_request = breaker(self._send)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            "X-Stratum-Deployment": self._deployment_id,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def create(
        self,
        resource_id: str,
        kind: ResourceKind,
        config: Mapping[str, Any],
    ) -> dict[str, Any]:
        payload = {
            "id": resource_id,
            "deployment": self._deployment_id,
            "config": {key: await self._reveal(value) for key, value in config.items()},
        }
        data = await self._request("POST", f"/resources/{kind.value}", json=payload)
        outputs = dict(data.get("outputs") or {})
        for name, value in (data.get("secrets") or {}).items():
            outputs[name] = self._vault.issue(resource_id, name, SecretMaterial(str(value)))
        return outputs

    async def delete(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> None:
        try:
            await self._request("DELETE", f"/resources/{kind.value}/{resource_id}")
        except _NotFound:
            logger.info("http_delete_absent", resource_id=resource_id)
        self._vault.revoke_resource(resource_id)

    async def verify(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        try:
            data = await self._request("GET", f"/resources/{kind.value}/{resource_id}/health")
        except _NotFound:
            return VerifyResult(healthy=False, detail="resource not found")
        return VerifyResult(healthy=bool(data.get("healthy")), detail=str(data.get("detail", "")))

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        if handle in self._vault:
            return self._vault.resolve(handle)
        parsed = SecretHandle.parse(handle)
        try:
            data = await self._request("GET", f"/secrets/{parsed.resource_id}/{parsed.name}")
        except _NotFound as exc:
            raise PermanentBackendError("Unknown secret handle", details={"handle": handle}) from exc
        material = SecretMaterial(str(data.get("value", "")))
        self._vault.issue(parsed.resource_id, parsed.name, material)
        return material

    async def health_check(self) -> BackendHealth:
        try:
            await self._request("GET", "/health")
        except (TransientBackendError, PermanentBackendError, _NotFound) as exc:
            return BackendHealth(status="unreachable", details=str(exc))
        return BackendHealth(status="healthy")

    async def aclose(self) -> None:
        return None

    async def _reveal(self, value: Any) -> Any:
        if not is_secret_handle(value):
            return value
        resolver = self._secret_resolver or self.resolve_secret
        material = await resolver(value)
        return material.reveal()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            return await self._guarded_request(method, path, json=json)
        except CircuitBreakerError as exc:
            raise TransientBackendError(f"Circuit open for {self._base_url}: {exc}") from exc

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.TransportError as exc:
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise TransientBackendError(f"{method} {url}: {exc}") from exc

        if response.status_code == 404:
            raise _NotFound(url)
        if is_retryable_status(response.status_code):
            logger.warning("http_retryable_error", status=response.status_code, method=method, url=url)
            raise TransientBackendError(
                f"HTTP {response.status_code} from {method} {url}",
                details={"status": response.status_code},
            )
        if response.is_error:
            logger.error("http_permanent_error", status=response.status_code, method=method, url=url)
            raise PermanentBackendError(
                f"HTTP {response.status_code} from {method} {url}: {response.text[:200]}",
                details={"status": response.status_code},
            )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise PermanentBackendError(
                f"Malformed response from {method} {url}: {exc}",
                details={"status": response.status_code},
            ) from exc
        if not isinstance(data, dict):
            raise PermanentBackendError(
                f"Expected a JSON object from {method} {url}",
                details={"status": response.status_code},
            )
        return data


class _NotFound(Exception):
    """404 from the control plane; callers decide whether it is an error."""


def _factory(
    *,
    deployment_id: str,
    settings: Settings | None = None,
    secret_resolver: SecretResolver | None = None,
    **_: Any,
) -> HttpBackend:
    cfg = settings or get_settings()
    if not cfg.http_backend_url:
        raise ConfigurationError("STRATUM_HTTP_BACKEND_URL is required for the http backend")
    return HttpBackend(
        cfg.http_backend_url,
        deployment_id,
        token=cfg.http_backend_token,
        timeout=cfg.http_timeout,
        secret_resolver=secret_resolver,
    )


register_backend(
    HttpBackend.name,
    _factory,
    description="REST control-plane API (httpx, circuit breaker)",
)

__all__ = ["HttpBackend", "is_retryable_status"]
