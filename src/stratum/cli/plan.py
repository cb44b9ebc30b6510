"""
CLI command for previewing (dry-run) what apply would do.
"""

from __future__ import annotations

from typing import Optional

from stratum.cli.common import make_orchestrator, print_json, resolve_settings, run_orchestrator, setup_logging
from stratum.cli.ux import console, header, success
from stratum.core.errors import ExitCode, main_with_error_handling
from stratum.planning.diff import PlanPreview

_ACTION_STYLES = {
    "create": ("success", "+"),
    "update": ("warning", "~"),
    "retry": ("warning", "↻"),
    "verify": ("info", "?"),
    "noop": ("muted", "="),
    "orphan": ("error", "-"),
}


def print_plan_summary(preview: PlanPreview, verbose: bool = False) -> None:
    """Print the plan in execution order."""
    header(f"Plan: {preview.deployment_id}")
    console.print()

    for change in preview.changes:
        if change.action == "noop" and not verbose:
            continue
        style, marker = _ACTION_STYLES[change.action]
        deps = f" [muted](after {', '.join(change.dependencies)})[/muted]" if change.dependencies else ""
        console.print(
            f"  [{style}]{marker} {change.action:<7}[/{style}] "
            f"{change.resource_id} [muted]{change.kind}[/muted]{deps}"
        )
        if verbose and change.reason:
            console.print(f"     [muted]└ {change.reason}[/muted]")

    console.print()
    if not preview.has_changes:
        success("No changes. Deployment is up to date.")
        return

    counts = preview.counts()
    summary = ", ".join(f"{count} {action}" for action, count in counts.items())
    console.print(f"[bold]Total:[/bold] {summary}")
    console.print()


@main_with_error_handling()
def plan_command(
    spec_file: str,
    deployment: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    state_backend: Optional[str] = None,
) -> int:
    """
    Preview what ``apply`` would do without calling any backend.

    Returns:
        Exit code (0 on success; configuration errors map to 10)
    """
    settings = resolve_settings(state_backend=state_backend)
    setup_logging(settings, verbose)
    orchestrator = make_orchestrator(spec_file, deployment, settings)
    preview = run_orchestrator(orchestrator, lambda o: o.plan())

    if output_format == "json":
        print_json(preview.to_dict())
    else:
        print_plan_summary(preview, verbose=verbose)
    return ExitCode.SUCCESS
