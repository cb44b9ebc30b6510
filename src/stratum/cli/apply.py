"""
CLI command for provisioning a deployment.
"""

from __future__ import annotations

from typing import Optional

from stratum.cli.common import make_orchestrator, print_json, resolve_settings, run_orchestrator, setup_logging
from stratum.cli.ux import console, error, header, warning
from stratum.core.errors import ExitCode, main_with_error_handling
from stratum.engine.results import ApplyResult


def print_apply_summary(result: ApplyResult, verbose: bool = False) -> None:
    """Print per-resource outcome in plan order."""
    header(f"Apply: {result.deployment_id}")
    console.print()

    for rid in result.plan_order:
        if rid in result.failed:
            console.print(f"  [error]✗ {rid:<24}[/error] failed: {_truncate(result.failed[rid], verbose)}")
        elif rid in result.blocked:
            console.print(
                f"  [warning]○ {rid:<24}[/warning] not attempted "
                f"(blocked by {', '.join(result.blocked[rid])})"
            )
        elif rid in result.cancelled:
            console.print(f"  [muted]○ {rid:<24}[/muted] cancelled")
        elif rid in result.verify_failed:
            console.print(
                f"  [warning]⚠ {rid:<24}[/warning] verification failed: "
                f"{_truncate(result.verify_failed[rid], verbose)}"
            )
        elif rid in result.created:
            console.print(f"  [success]✓ {rid:<24}[/success] created")
        elif rid in result.unchanged:
            console.print(f"  [muted]= {rid:<24}[/muted] unchanged")

    console.print()
    duration = f" in {result.duration_seconds:.1f}s" if result.duration_seconds > 0 else ""
    outcome = result.outcome
    if outcome == "success":
        console.print(
            f"[bold green]Applied {len(result.succeeded)} resources{duration}[/bold green] "
            f"({len(result.created)} created, {len(result.unchanged)} unchanged)"
        )
    elif outcome == "warning":
        warning(f"Applied {len(result.succeeded)} resources{duration}; some failed verification")
    else:
        error(
            f"Apply {'partially ' if outcome == 'partial' else ''}failed{duration}: "
            f"{len(result.failed)} failed, {len(result.not_attempted)} not attempted"
        )
    console.print()


def _truncate(message: str, verbose: bool) -> str:
    if not verbose and len(message) > 80:
        return message[:77] + "..."
    return message


@main_with_error_handling()
def apply_command(
    spec_file: str,
    deployment: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    max_workers: Optional[int] = None,
    state_backend: Optional[str] = None,
) -> int:
    """
    Provision every resource of the deployment in dependency order.

    Returns:
        Exit code derived from the apply outcome (0, 1, 2 or 3), or 130 if
        the run was cancelled with Ctrl-C
    """
    settings = resolve_settings(max_workers=max_workers, state_backend=state_backend)
    setup_logging(settings, verbose)
    orchestrator = make_orchestrator(spec_file, deployment, settings)
    result = run_orchestrator(orchestrator, lambda o: o.apply(), cancellable=True)

    if output_format == "json":
        print_json(result.to_dict())
    else:
        print_apply_summary(result, verbose=verbose)

    if orchestrator.cancelled:
        return ExitCode.INTERRUPTED
    return result.exit_code
