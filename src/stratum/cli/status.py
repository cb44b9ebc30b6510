"""
CLI command for showing recorded resource state.
"""

from __future__ import annotations

from typing import List, Optional

from stratum.cli.common import make_orchestrator, print_json, resolve_settings, run_orchestrator, setup_logging
from stratum.cli.ux import console, print_table, styled_status, warning
from stratum.core.errors import ExitCode, main_with_error_handling
from stratum.domain.models import ResourceState


def print_status(deployment_id: str, states: List[ResourceState], verbose: bool = False) -> None:
    if not states:
        warning(f"No recorded resources for deployment '{deployment_id}'")
        return

    columns = ["Resource", "Kind", "Status", "Attempts", "Updated"]
    if verbose:
        columns.append("Error")
    rows = []
    for state in states:
        row = [
            state.resource_id,
            state.kind.value,
            styled_status(state.status.value),
            str(state.attempts),
            state.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        ]
        if verbose:
            row.append(state.error or "")
        rows.append(row)
    print_table(f"Deployment: {deployment_id}", columns, rows)

    if verbose:
        for state in states:
            if state.outputs:
                console.print(f"\n[bold]{state.resource_id}[/bold] outputs")
                for key, value in sorted(state.outputs.items()):
                    console.print(f"  [cyan]{key}:[/cyan] {value}")


def state_to_dict(state: ResourceState) -> dict:
    return state.model_dump(mode="json")


@main_with_error_handling()
def status_command(
    spec_file: Optional[str],
    deployment: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    state_backend: Optional[str] = None,
) -> int:
    """Show each recorded resource's lifecycle state. Read-only."""
    settings = resolve_settings(state_backend=state_backend)
    setup_logging(settings, verbose)
    orchestrator = make_orchestrator(spec_file, deployment, settings)
    states = run_orchestrator(orchestrator, lambda o: o.status())

    if output_format == "json":
        print_json(
            {
                "deployment_id": orchestrator.deployment_id,
                "resources": [state_to_dict(s) for s in states],
            }
        )
    else:
        print_status(orchestrator.deployment_id, states, verbose=verbose)
    return ExitCode.SUCCESS
