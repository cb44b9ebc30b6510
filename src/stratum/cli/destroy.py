"""
CLI command for tearing a deployment down in reverse dependency order.
"""

from __future__ import annotations

from typing import Optional

from stratum.cli.common import make_orchestrator, print_json, resolve_settings, run_orchestrator, setup_logging
from stratum.cli.ux import console, error, header, info, success
from stratum.core.errors import ExitCode, main_with_error_handling
from stratum.engine.results import DestroyResult


def print_destroy_summary(result: DestroyResult, dry_run: bool = False) -> None:
    header(f"{'Destroy plan' if dry_run else 'Destroy'}: {result.deployment_id}")
    console.print()

    if not result.order:
        info("Nothing recorded for this deployment")
        return

    if dry_run:
        for step, rid in enumerate(result.order, 1):
            console.print(f"  [muted]{step:>3}.[/muted] {rid}")
        console.print()
        console.print("[muted]To delete these resources, run without --dry-run[/muted]")
        console.print()
        return

    for rid in result.order:
        if rid in result.failed:
            console.print(f"  [error]✗ {rid:<24}[/error] failed: {result.failed[rid]}")
        elif rid in result.blocked:
            console.print(
                f"  [warning]○ {rid:<24}[/warning] kept "
                f"(dependents remain: {', '.join(result.blocked[rid])})"
            )
        elif rid in result.cancelled:
            console.print(f"  [muted]○ {rid:<24}[/muted] cancelled")
        elif rid in result.removed:
            console.print(f"  [muted]- {rid:<24}[/muted] record removed (never created)")
        elif rid in result.deleted:
            console.print(f"  [success]✓ {rid:<24}[/success] deleted")

    console.print()
    if result.success:
        success(f"Destroyed {len(result.deleted)} resources in {result.duration_seconds:.1f}s")
    else:
        error("Destroy incomplete; re-run to retry the remaining resources")
    console.print()


@main_with_error_handling()
def destroy_command(
    spec_file: Optional[str],
    deployment: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    dry_run: bool = False,
    max_workers: Optional[int] = None,
    state_backend: Optional[str] = None,
) -> int:
    """
    Delete every recorded resource, dependents first.

    With ``dry_run`` only the teardown order is printed.
    """
    settings = resolve_settings(max_workers=max_workers, state_backend=state_backend)
    setup_logging(settings, verbose)
    orchestrator = make_orchestrator(spec_file, deployment, settings)
    result = run_orchestrator(orchestrator, lambda o: o.destroy(dry_run=dry_run), cancellable=True)

    if output_format == "json":
        payload = result.to_dict()
        payload["dry_run"] = dry_run
        print_json(payload)
    else:
        print_destroy_summary(result, dry_run=dry_run)

    if dry_run:
        return ExitCode.SUCCESS
    if orchestrator.cancelled:
        return ExitCode.INTERRUPTED
    return result.exit_code
