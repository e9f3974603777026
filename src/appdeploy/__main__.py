"""CLI entrypoints (appdeploy deploy, appdeploy plan)."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from appdeploy.core.config import RunConfig, SyncMode, load_settings
from appdeploy.core.exceptions import AppDeployError, ConfigurationError
from appdeploy.deploy.orchestrator import DeploymentOrchestrator
from appdeploy.deploy.remote import RemoteEnvironment
from appdeploy.packages.inspector import PackageInspector
from appdeploy.planning.graph import DependencyGraphBuilder
from appdeploy.planning.planner import DeploymentPlanner
from appdeploy.utils.logging import setup_logging

logger = structlog.get_logger()

EXIT_CONFIG_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appdeploy", description="Deploy a batch of app packages in dependency order")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--log-format", default=None, choices=["json", "console"])
    sub = parser.add_subparsers(dest="cmd")

    cmd_deploy = sub.add_parser("deploy", help="Deploy packages to the target environment")
    cmd_deploy.add_argument("packages", nargs="+", help="Package files, in input order")
    cmd_deploy.add_argument(
        "--sync-mode",
        default=None,
        help="One of: " + ", ".join(m.value for m in SyncMode),
    )
    cmd_deploy.add_argument("--dry-run", action="store_true", default=None, help="Report intended actions only")
    cmd_deploy.add_argument("--environment-url", default=None, help="Package administration endpoint")
    cmd_deploy.add_argument("--report", default=None, help="Write the JSON run report to this file")

    cmd_plan = sub.add_parser("plan", help="Print the install order without contacting an environment")
    cmd_plan.add_argument("packages", nargs="+", help="Package files, in input order")

    return parser


def _deploy(args: argparse.Namespace, settings) -> int:
    config = RunConfig.create(
        sync_mode=args.sync_mode or settings.sync_mode,
        dry_run=bool(args.dry_run) if args.dry_run is not None else settings.dry_run,
        candidate_paths=args.packages,
    )
    environment = RemoteEnvironment.from_settings(settings)
    report = DeploymentOrchestrator(environment).run(config)

    for entry in report.entries:
        logger.info(
            "Run report entry",
            package=str(entry.identity),
            action=entry.action.value,
            status=entry.status.value,
            reason=entry.reason,
            error=entry.error,
            dry_run=entry.dry_run,
        )
    if args.report:
        Path(args.report).write_text(report.to_json(), encoding="utf-8")
        logger.info("Run report written", path=args.report)
    return report.exit_code


def _plan(args: argparse.Namespace) -> int:
    candidates = PackageInspector().inspect_all(args.packages)
    plan = DeploymentPlanner().plan(DependencyGraphBuilder().build(candidates))
    for ref in plan:
        print(str(ref.identity))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return EXIT_CONFIG_ERROR

    try:
        settings = load_settings(
            log_level=args.log_level,
            log_format=args.log_format,
            environment_url=getattr(args, "environment_url", None),
        )
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    setup_logging(settings.log_level, settings.log_format)

    try:
        if args.cmd == "plan":
            return _plan(args)
        return _deploy(args, settings)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return EXIT_CONFIG_ERROR
    except AppDeployError as e:
        logger.error("Deployment failed", error=str(e), error_type=type(e).__name__)
        return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
