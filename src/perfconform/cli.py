#!/usr/bin/env python3
"""
perfconform CLI -- verify that performance-tuned nodes match their profile.

Usage:
  perfconform run [--config PATH] [--check NAME]... [--fail-fast] [--parallel]
                  [--backend auto|rich|plain] [--report PATH] [--verbose]
  perfconform list
  perfconform init
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from perfconform.config import (
    PROFILE_ENV_VAR,
    ConformanceConfig,
    config_file,
    init_config,
    load_config,
    logs_dir,
)
from perfconform.console import BACKENDS, ConsoleProtocol, make_console

logger = logging.getLogger("perfconform")


def _setup_logging(project_dir: Path, *, verbose: bool = False) -> None:
    """Configure file logging to .perfconform/logs/perfconform.log."""
    log_dir = logs_dir(project_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "perfconform.log"

    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    if verbose:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(logging.DEBUG)
        stream.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(stream)


def _load(args: argparse.Namespace, project_dir: Path) -> ConformanceConfig:
    path = Path(args.config) if args.config else config_file(project_dir)
    return load_config(path, profile_name=os.environ.get(PROFILE_ENV_VAR))


# ---------------------------------------------------------------------------
# CLI commands
# ---------------------------------------------------------------------------


def cmd_list(args: argparse.Namespace, console: ConsoleProtocol) -> int:
    """Show the check catalog."""
    from perfconform.scenario import default_catalog

    config = _load(args, Path.cwd())
    rows = [
        [c.name, c.group, "node" if c.per_node else "cluster", c.description]
        for c in default_catalog(config)
    ]
    console.table(["Check", "Group", "Scope", "Description"], rows, title="Checks")
    return 0


def cmd_init(args: argparse.Namespace, console: ConsoleProtocol) -> int:
    """Write the default configuration file."""
    path = init_config(Path.cwd())
    console.success(f"Configuration at {path}")
    return 0


def cmd_run(args: argparse.Namespace, console: ConsoleProtocol) -> int:
    """Run the selected checks against the cluster."""
    from perfconform.adapters.oc import OcCluster, OcRemoteProbe, OcWorkloads
    from perfconform.report import save_report
    from perfconform.scenario import Scenario, default_catalog, select_checks

    config = _load(args, Path.cwd())
    try:
        checks = select_checks(default_catalog(config), args.check or [])
    except ValueError as exc:
        console.error(str(exc))
        return 2

    console.panel(f"profile: {config.profile_name}\nrole: {config.role}", title="perfconform", style="green")
    cluster = OcCluster(config)
    scenario = Scenario(
        config,
        probe=OcRemoteProbe(),
        intents=cluster,
        inventory=cluster,
        tuning_daemons=cluster,
        workloads=OcWorkloads(),
        console=console,
    )
    outcomes = asyncio.run(scenario.run(checks, fail_fast=args.fail_fast, parallel=args.parallel))

    if args.report:
        path = save_report(Path(args.report), config, outcomes)
        console.info(f"Report written to {path}")
    return 0 if all(o.passed for o in outcomes) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="perfconform",
        description="Verify performance-profile conformance of cluster nodes.",
    )
    parser.add_argument("--backend", choices=BACKENDS, default="auto", help="console output style")
    parser.add_argument("--config", help="path to config.yaml (default: .perfconform/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr as well")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run conformance checks")
    run.add_argument("--check", action="append", metavar="NAME", help="check name or group; repeatable")
    run.add_argument("--fail-fast", action="store_true", help="stop after the first failing check")
    run.add_argument("--parallel", action="store_true", help="probe the nodes of one check concurrently")
    run.add_argument("--report", metavar="PATH", help="write a YAML report")
    run.set_defaults(func=cmd_run)

    sub.add_parser("list", help="list available checks").set_defaults(func=cmd_list)
    sub.add_parser("init", help="write the default configuration").set_defaults(func=cmd_init)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the `perfconform` command."""
    args = build_parser().parse_args(argv)
    _setup_logging(Path.cwd(), verbose=args.verbose)
    console = make_console(args.backend)
    try:
        return args.func(args, console)
    except ValueError as exc:
        logger.error("%s", exc)
        console.error(str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
