"""
Shared plumbing for CLI commands: settings overrides, logging setup,
JSON output and running orchestrator coroutines with SIGINT handling.
"""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from stratum.config import Settings, get_settings
from stratum.logging import configure_logging
from stratum.orchestrator import Orchestrator

logger = structlog.get_logger()

T = TypeVar("T")


def resolve_settings(
    *,
    max_workers: Optional[int] = None,
    state_backend: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Settings:
    """Apply command-line overrides on top of environment settings."""
    base = settings or get_settings()
    overrides: dict[str, Any] = {}
    if max_workers is not None:
        overrides["max_workers"] = max(1, max_workers)
    if state_backend is not None:
        overrides["state_backend"] = state_backend
    return base.model_copy(update=overrides) if overrides else base


def setup_logging(settings: Settings, verbose: bool = False) -> None:
    level = "DEBUG" if verbose else settings.log_level
    configure_logging(level, json=settings.log_json)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def make_orchestrator(
    spec_file: Optional[str],
    deployment: Optional[str],
    settings: Settings,
) -> Orchestrator:
    return Orchestrator(Path(spec_file) if spec_file else None, deployment, settings)


def run_orchestrator(
    orchestrator: Orchestrator,
    operation: Callable[[Orchestrator], Awaitable[T]],
    *,
    cancellable: bool = False,
) -> T:
    """Run ``operation`` on a fresh event loop and close the orchestrator after.

    With ``cancellable`` set, SIGINT requests cooperative cancellation
    instead of interrupting in-flight backend calls.
    """

    async def _main() -> T:
        loop = asyncio.get_running_loop()
        installed = False
        if cancellable:
            try:
                loop.add_signal_handler(signal.SIGINT, _on_interrupt, orchestrator)
                installed = True
            except NotImplementedError:
                logger.debug("signal_handler_unsupported")
        try:
            return await operation(orchestrator)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
            await orchestrator.close()

    return asyncio.run(_main())


def _on_interrupt(orchestrator: Orchestrator) -> None:
    from stratum.cli.ux import warning

    warning("Interrupt received; finishing in-flight operations (no new resources will start)")
    orchestrator.cancel()
