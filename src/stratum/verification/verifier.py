"""
Post-creation verification.

Runs the adapter's health check with a bounded timeout, followed by an
optional kind-specific network probe. Every failure inside a check is
raised as a VerificationError and converted here into an unhealthy
VerifyResult, so ``verify`` itself never raises and the engine records
the detail on the resource state.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import structlog

from stratum.backends.base import BackendAdapter, VerifyResult
from stratum.core.errors import BackendError, VerificationError
from stratum.domain.models import ResourceKind
from stratum.verification.probes import KIND_PROBES, Probe

logger = structlog.get_logger()


class Verifier:
    """Kind-aware health checker."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        network_probes: bool = False,
        probes: Mapping[ResourceKind, Probe] | None = None,
    ) -> None:
        self.timeout = timeout
        self.network_probes = network_probes
        self._probes = dict(KIND_PROBES if probes is None else probes)

    async def verify(
        self,
        adapter: BackendAdapter,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        try:
            return await self._check(adapter, resource_id, kind, outputs)
        except VerificationError as exc:
            logger.warning("verify_failed", detail=exc.message, **exc.details)
            return VerifyResult(healthy=False, detail=exc.message)

    async def _check(
        self,
        adapter: BackendAdapter,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        context = {"resource_id": resource_id, "kind": kind.value}
        try:
            result = await asyncio.wait_for(
                adapter.verify(resource_id, kind, outputs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise VerificationError(
                f"verification timed out after {self.timeout:g}s", details=context
            ) from exc
        except BackendError as exc:
            raise VerificationError(exc.message, details=context) from exc
        except Exception as exc:
            logger.exception("verify_unexpected_error", **context)
            raise VerificationError(f"{type(exc).__name__}: {exc}", details=context) from exc

        if not result.healthy:
            raise VerificationError(result.detail or "unhealthy", details=context)

        probe = self._probes.get(kind) if self.network_probes else None
        if probe is None:
            return result
        try:
            result = await probe(outputs, self.timeout)
        except Exception as exc:
            logger.exception("probe_unexpected_error", **context)
            raise VerificationError(f"{type(exc).__name__}: {exc}", details=context) from exc
        if not result.healthy:
            raise VerificationError(result.detail or "unhealthy", details=context)
        return result
