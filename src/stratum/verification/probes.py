"""
Kind-specific network probes run after the adapter's own verify call.

Each probe reads the endpoint from the resource outputs and returns a
VerifyResult; none of them raise.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import urlparse

import httpx

from stratum.backends.base import VerifyResult
from stratum.domain.models import ResourceKind

Probe = Callable[[Mapping[str, Any], float], Awaitable[VerifyResult]]


async def tcp_probe(host: str, port: int, timeout: float) -> VerifyResult:
    """Check that a TCP connection can be opened."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError) as exc:
        return VerifyResult(healthy=False, detail=f"tcp {host}:{port} unreachable: {exc or 'timeout'}")
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return VerifyResult(healthy=True, detail=f"tcp {host}:{port} reachable")


async def http_probe(url: str, timeout: float) -> VerifyResult:
    """Check that an HTTP endpoint answers without a server error."""
    try:
        async with httpx.AsyncClient(timeout=timeout, verify=True) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        return VerifyResult(healthy=False, detail=f"GET {url} failed: {exc}")
    if response.status_code >= 500:
        return VerifyResult(healthy=False, detail=f"GET {url} returned {response.status_code}")
    return VerifyResult(healthy=True, detail=f"GET {url} returned {response.status_code}")


async def database_probe(outputs: Mapping[str, Any], timeout: float) -> VerifyResult:
    host = outputs.get("host")
    port = outputs.get("port")
    if not host and outputs.get("endpoint"):
        host, _, raw_port = str(outputs["endpoint"]).rpartition(":")
        port = raw_port or port
    if not host or not port:
        return VerifyResult(healthy=True, detail="no database endpoint to probe")
    try:
        port_number = int(port)
    except (TypeError, ValueError):
        return VerifyResult(healthy=False, detail=f"invalid database port {port!r}")
    return await tcp_probe(str(host), port_number, timeout)


async def endpoint_probe(outputs: Mapping[str, Any], timeout: float) -> VerifyResult:
    url = outputs.get("endpoint") or outputs.get("login_server")
    if not url:
        return VerifyResult(healthy=True, detail="no endpoint to probe")
    url = str(url)
    if not urlparse(url).scheme:
        url = f"https://{url}"
    return await http_probe(url, timeout)


KIND_PROBES: dict[ResourceKind, Probe] = {
    ResourceKind.database: database_probe,
    ResourceKind.ai_service: endpoint_probe,
    ResourceKind.gateway: endpoint_probe,
    ResourceKind.registry: endpoint_probe,
}
