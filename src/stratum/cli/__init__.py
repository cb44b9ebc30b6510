"""
CLI commands for Stratum.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from stratum import __version__


def _add_common(parser: argparse.ArgumentParser, *, spec_required: bool = True) -> None:
    if spec_required:
        parser.add_argument("spec_file", help="Path to deployment spec YAML")
    else:
        parser.add_argument(
            "spec_file",
            nargs="?",
            help="Path to deployment spec YAML (optional when --deployment is given)",
        )
    parser.add_argument("--deployment", "-d", help="Deployment identifier (defaults to the spec's 'deployment')")
    parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed information")
    parser.add_argument(
        "--state-backend",
        choices=["json", "sql", "memory"],
        help="State store backend (overrides STRATUM_STATE_BACKEND)",
    )


def _add_workers(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--max-workers",
        type=int,
        help="Maximum concurrent backend operations (overrides STRATUM_MAX_WORKERS)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stratum",
        description="Dependency-ordered infrastructure provisioning",
    )
    parser.add_argument("--version", action="version", version=f"stratum {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Preview what apply would do (dry-run)")
    _add_common(plan_parser)

    apply_parser = subparsers.add_parser("apply", help="Provision resources in dependency order")
    _add_common(apply_parser)
    _add_workers(apply_parser)

    status_parser = subparsers.add_parser("status", help="Show recorded resource state")
    _add_common(status_parser, spec_required=False)

    destroy_parser = subparsers.add_parser("destroy", help="Tear down resources, dependents first")
    _add_common(destroy_parser, spec_required=False)
    _add_workers(destroy_parser)
    destroy_parser.add_argument(
        "--dry-run", action="store_true", help="Print the teardown order without deleting"
    )

    verify_parser = subparsers.add_parser("verify", help="Re-verify provisioned resources")
    _add_common(verify_parser, spec_required=False)

    backends_parser = subparsers.add_parser("backends", help="List registered backend adapters")
    backends_parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    backends_parser.add_argument(
        "--check", action="store_true", help="Instantiate each backend and report its health"
    )

    return parser


def run(argv: Sequence[str] | None = None) -> int:
    """Dispatch to a command and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "backends":
        from stratum.cli.backends import backends_command

        return backends_command(output_format=args.output, check=args.check)

    common = {
        "deployment": args.deployment,
        "output_format": args.output,
        "verbose": args.verbose,
        "state_backend": args.state_backend,
    }

    if args.command == "plan":
        from stratum.cli.plan import plan_command

        return plan_command(args.spec_file, **common)

    if args.command == "apply":
        from stratum.cli.apply import apply_command

        return apply_command(args.spec_file, max_workers=args.max_workers, **common)

    if args.command == "status":
        from stratum.cli.status import status_command

        return status_command(args.spec_file, **common)

    if args.command == "destroy":
        from stratum.cli.destroy import destroy_command

        return destroy_command(
            args.spec_file, dry_run=args.dry_run, max_workers=args.max_workers, **common
        )

    if args.command == "verify":
        from stratum.cli.verify import verify_command

        return verify_command(args.spec_file, **common)

    parser.error(f"Unknown command: {args.command}")
    return 2


def main(argv: Sequence[str] | None = None) -> None:
    sys.exit(int(run(argv)))


__all__ = ["build_parser", "main", "run"]
