"""
CLI command for re-verifying provisioned resources.
"""

from __future__ import annotations

from typing import Optional

from stratum.cli.common import make_orchestrator, print_json, resolve_settings, run_orchestrator, setup_logging
from stratum.cli.ux import console, header, info, success, warning
from stratum.core.errors import main_with_error_handling
from stratum.engine.results import VerifyReport


def print_verify_report(report: VerifyReport) -> None:
    header(f"Verify: {report.deployment_id}")
    console.print()

    if not report.healthy and not report.unhealthy:
        info("No provisioned resources to verify")
        return

    for rid in sorted(report.healthy):
        console.print(f"  [success]✓ {rid:<24}[/success] healthy")
    for rid, detail in sorted(report.unhealthy.items()):
        console.print(f"  [warning]⚠ {rid:<24}[/warning] {detail}")

    console.print()
    if report.unhealthy:
        warning(f"{len(report.unhealthy)} of {len(report.healthy) + len(report.unhealthy)} resources unhealthy")
    else:
        success(f"All {len(report.healthy)} resources healthy")
    console.print()


@main_with_error_handling()
def verify_command(
    spec_file: Optional[str],
    deployment: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    state_backend: Optional[str] = None,
) -> int:
    """Re-run verification for every Created or VerifyFailed resource.

    Returns 1 (warning) when any resource is unhealthy.
    """
    settings = resolve_settings(state_backend=state_backend)
    setup_logging(settings, verbose)
    orchestrator = make_orchestrator(spec_file, deployment, settings)
    report = run_orchestrator(orchestrator, lambda o: o.verify())

    if output_format == "json":
        print_json(report.to_dict())
    else:
        print_verify_report(report)
    return report.exit_code
