"""Command-line entry point.

    shieldops scan /srv/app --owner acme --repo app-canonical
    shieldops self-update --owner acme --repo app-canonical --self-update-path shieldops/__main__.py

Exit code is 0 unless ``--fail-on-unrepaired`` is given and the pass left a
modified file unrepaired or failed critically.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from shieldops import __version__
from shieldops.config import Settings
from shieldops.domain.records import PassState, ReconciliationReport
from shieldops.engine.orchestrator.reconciler import ReconciliationCoordinator
from shieldops.engine.repair_client import RepairClient
from shieldops.engine.resilience import SelfUpdater, install_last_resort_handler, self_healing
from shieldops.infrastructure.external import GitHubContentProvider
from shieldops.infrastructure.logging import setup_logging
from shieldops.shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shieldops",
        description="Reconcile a local tree against a trusted remote manifest",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--owner", help="Content provider owner (SHIELD_OWNER)")
    common.add_argument("--repo", help="Content provider repository (SHIELD_REPO)")
    common.add_argument("--ref", help="Branch or tag to fetch from (SHIELD_REF)")
    common.add_argument("--log-level", help="debug | info | warning | error")
    common.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log lines")
    common.add_argument("--self-update-path", help="Remote path of the engine source")

    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", parents=[common], help="Run one reconciliation pass")
    scan.add_argument("root", help="Scan root directory")
    scan.add_argument("--no-backup", action="store_true", help="Do not keep .bak copies before overwriting")
    scan.add_argument("--workers", type=int, help="Concurrent per-file workers")
    scan.add_argument("--verify-content", action="store_true", default=None,
                      help="Reject fetched content whose digest differs from the manifest")
    scan.add_argument("--self-update", action="store_true", default=None,
                      help="Allow self-repair of the engine after unexpected failures")
    scan.add_argument("--fail-on-unrepaired", action="store_true",
                      help="Exit 1 if any modified file is left unrepaired")
    scan.add_argument("--json", action="store_true", help="Print the pass summary as JSON")

    update = sub.add_parser("self-update", parents=[common], help="Replace the engine source with the canonical copy")
    update.add_argument("--local-path", help="Local engine source file to overwrite")

    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Overlay explicit CLI flags on environment-derived settings."""
    overrides: dict[str, Any] = {}
    mapping = {
        "owner": "owner",
        "repo": "repo",
        "ref": "ref",
        "log_level": "log_level",
        "json_logs": "json_logs",
        "self_update_path": "self_update_path",
        "workers": "max_workers",
        "verify_content": "verify_fetched_content",
        "self_update": "self_update_enabled",
    }
    for arg_name, field_name in mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            overrides[field_name] = value
    if getattr(args, "no_backup", False):
        overrides["backup_enabled"] = False
    if getattr(args, "local_path", None):
        overrides["self_update_local_path"] = Path(args.local_path)
    if args.command == "self-update":
        overrides["self_update_enabled"] = True
    return Settings(**overrides)


def build_self_updater(settings: Settings) -> tuple[SelfUpdater, GitHubContentProvider]:
    provider = GitHubContentProvider.from_settings(settings)
    repair_client = RepairClient(provider, backup_enabled=True, backup_suffix=settings.backup_suffix)
    return SelfUpdater.from_settings(settings, repair_client), provider


async def run_scan(
    settings: Settings,
    root: str,
    updater: SelfUpdater,
    updater_provider: GitHubContentProvider,
) -> ReconciliationReport:
    try:
        async with GitHubContentProvider.from_settings(settings) as provider:
            coordinator = ReconciliationCoordinator.from_settings(
                root, settings, provider, middleware=self_healing(updater)
            )
            return await coordinator.run_pass()
    finally:
        # The updater's HTTP client is bound to this loop; the last-resort
        # hook opens a fresh one if it fires later.
        await updater_provider.aclose()


async def run_self_update(updater: SelfUpdater, updater_provider: GitHubContentProvider) -> bool:
    async with updater_provider:
        result = await updater.self_update()
    return result.success


def _describe_validation_error(exc: ValidationError) -> str:
    problems = [
        f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
        for err in exc.errors()
    ]
    return "invalid configuration: " + "; ".join(problems)


def exit_code_for(report: ReconciliationReport, fail_on_unrepaired: bool) -> int:
    if not fail_on_unrepaired:
        return 0
    if report.state == PassState.FAILED or report.unrepaired():
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = settings_from_args(args)
        setup_logging(settings.log_level, settings.json_logs, settings.log_file)
        settings.coordinates()
    except ConfigurationError as exc:
        parser.error(exc.message)
    except ValidationError as exc:
        parser.error(_describe_validation_error(exc))

    updater, updater_provider = build_self_updater(settings)

    if args.command == "self-update":
        return 0 if asyncio.run(run_self_update(updater, updater_provider)) else 1

    if settings.self_update_enabled:
        install_last_resort_handler(updater)

    report = asyncio.run(run_scan(settings, args.root, updater, updater_provider))
    if args.json:
        print(json.dumps(report.summary(), indent=2, default=str))
    return exit_code_for(report, args.fail_on_unrepaired)


if __name__ == "__main__":
    sys.exit(main())
