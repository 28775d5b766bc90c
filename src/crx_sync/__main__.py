"""CLI entrypoint (crx-sync deploy, crx-sync status, ...)."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from crx_sync.core.config import Settings, load_instances_file
from crx_sync.core.exceptions import CrxSyncError
from crx_sync.core.models import Instance
from crx_sync.instance.sync import InstanceSync, for_each_instance
from crx_sync.utils.logging import bind_operation_context, setup_logging

logger = structlog.get_logger()

FILE_COMMANDS = ("upload", "deploy", "distribute")
PATH_COMMANDS = ("install", "activate", "delete", "uninstall", "build")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crx-sync", description="Content repository package sync")
    parser.add_argument("--instances", help="YAML file with instance definitions")
    parser.add_argument("--instance", action="append", dest="names", help="Only use named instance(s)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    for cmd in FILE_COMMANDS:
        p = sub.add_parser(cmd, help=f"{cmd.capitalize()} a local package")
        p.add_argument("package", help="Path to package .zip file")

    for cmd in PATH_COMMANDS:
        p = sub.add_parser(cmd, help=f"{cmd.capitalize()} an uploaded package")
        p.add_argument("package", help="Remote package path or local package file")

    sub.add_parser("status", help="Show module and service state")
    sub.add_parser("reload", help="Restart instances")
    return parser


def select_instances(settings: Settings, path: Optional[str], names: Optional[List[str]]) -> List[Instance]:
    instances = load_instances_file(path) if path else list(settings.instances)
    if names:
        instances = [i for i in instances if i.name in names]
        if not instances:
            raise CrxSyncError(f"No instance matches: {', '.join(names)}")
    return instances


def run_command(args: argparse.Namespace, sync: InstanceSync) -> object:
    cmd = args.cmd
    packages = sync.packages

    if cmd == "upload":
        return packages.upload(args.package).path
    if cmd == "deploy":
        return packages.deploy(args.package)
    if cmd == "distribute":
        return packages.distribute(args.package)
    if cmd in PATH_COMMANDS:
        remote_path = args.package
        if Path(remote_path).is_file():
            remote_path = packages.determine_remote_package_path(remote_path)
        return packages.run(cmd, remote_path)
    if cmd == "status":
        state = sync.determine_instance_state()
        print(state)
        return state
    if cmd == "reload":
        sync.state.reload()
        return None
    raise CrxSyncError(f"Unknown command: {cmd}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(settings.log_level, settings.log_format)
    bind_operation_context(operation=args.cmd, package=getattr(args, "package", None))

    try:
        instances = select_instances(settings, args.instances, args.names)
        for_each_instance(instances, lambda sync: run_command(args, sync), settings)
    except CrxSyncError as e:
        logger.error("Command failed", error=str(e))
        return 1
    except ExceptionGroup as group:
        for error in group.exceptions:
            logger.error("Command failed", error=str(error))
        return 1

    logger.info("Command completed", instances=len(instances))
    return 0


if __name__ == "__main__":
    sys.exit(main())
