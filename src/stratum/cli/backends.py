"""
CLI command for listing registered backend adapters.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List

from stratum.backends import BackendHealth, backend_registry, create_backend, list_backends
from stratum.backends.registry import BackendSpec
from stratum.cli.common import print_json
from stratum.cli.ux import print_table
from stratum.config import get_settings
from stratum.core.errors import ConfigurationError, ExitCode, main_with_error_handling
from stratum.domain.models import ResourceKind

HEALTH_STYLES = {"healthy": "success", "degraded": "warning", "unreachable": "error", "unconfigured": "muted"}


async def check_backends(specs: List[BackendSpec]) -> Dict[str, BackendHealth]:
    """Instantiate each backend from settings and ask it for its health."""
    settings = get_settings()
    results: Dict[str, BackendHealth] = {}
    for spec in specs:
        try:
            adapter = create_backend(spec.name, deployment_id="health-check", settings=settings)
        except ConfigurationError as exc:
            results[spec.name] = BackendHealth(status="unconfigured", details=exc.message)
            continue
        try:
            results[spec.name] = await adapter.health_check()
        finally:
            await adapter.aclose()
    return results


@main_with_error_handling()
def backends_command(output_format: str = "text", check: bool = False) -> int:
    """List registered backends; with ``check``, report each one's health.

    Returns 1 (warning) when a configured backend is not healthy.
    """
    specs = list_backends()
    defaults = {kind.value: backend_registry.default_for(kind) for kind in ResourceKind}
    health = asyncio.run(check_backends(specs)) if check else {}

    if output_format == "json":
        backends = []
        for s in specs:
            entry = {"name": s.name, "description": s.description or ""}
            if s.name in health:
                entry["health"] = {"status": health[s.name].status, "details": health[s.name].details}
            backends.append(entry)
        print_json({"backends": backends, "defaults": defaults})
    else:
        columns = ["Name", "Default for", "Description"]
        if check:
            columns += ["Health", "Details"]
        rows = []
        for spec in specs:
            row = [
                spec.name,
                ", ".join(kind for kind, name in defaults.items() if name == spec.name) or "-",
                spec.description or "",
            ]
            if check:
                status = health[spec.name]
                style = HEALTH_STYLES[status.status]
                row += [f"[{style}]{status.status}[/{style}]", status.details or ""]
            rows.append(row)
        print_table("Backends", columns, rows)

    if any(h.status in ("degraded", "unreachable") for h in health.values()):
        return ExitCode.WARNING
    return ExitCode.SUCCESS
