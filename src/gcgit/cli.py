#!/usr/bin/env python3
"""gcgit command line.

Usage:
    gcgit init --instance NAME
    gcgit status [--instance NAME]
    gcgit validate [--instance NAME] [FILES...]
    gcgit <module> pull|diff|test [--instance NAME] [--type CONTENT_TYPE ...]

Environment variables:
    GCGIT_LOG_LEVEL     Console log level (default: INFO)
    GCGIT_LOG_FILE      Log file (default: ~/.gcgit/gcgit.log)
    XSIAM_FQDN, XSIAM_API_KEY, XSIAM_API_KEY_ID
                        Referenced by the generated config.yaml
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import ConfigError, ConfigManager
from .modules import ContentTypeDefinition, Module, ModuleRegistry, UnknownContentTypeError
from .object_store.git_manager import GitError, GitManager
from .object_store.lock import InstanceLock, LockError
from .object_store.store import InstanceStore
from .pull_engine.client import Credentials, ModuleClient
from .sync import SyncDriver, validate_object_files
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_INSTANCE = "default"
MODULE_ACTIONS = ("pull", "diff", "test")


def build_parser(registry: ModuleRegistry) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcgit",
        description="Version control for XSIAM and Application Security configuration objects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Create an instance directory with config template and git repo
    gcgit init --instance prod

    # Pull all XSIAM objects and commit what changed
    gcgit xsiam pull --instance prod

    # Show drift for two content types only
    gcgit xsiam diff --instance prod --type dashboard --type biocs
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    parser.add_argument(
        "--root", type=Path, default=None,
        help="Directory holding instance directories (default: current directory)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create an instance")
    init_parser.add_argument("--instance", required=True, help="Instance name")

    status_parser = subparsers.add_parser("status", help="Show local changes and connectivity")
    status_parser.add_argument("--instance", help="Instance name (default: all instances)")

    validate_parser = subparsers.add_parser("validate", help="Validate object files")
    validate_parser.add_argument("--instance", default=DEFAULT_INSTANCE, help="Instance name")
    validate_parser.add_argument("files", nargs="*", type=Path, help="Files to check (default: all)")

    for module in registry.all_modules():
        module_parser = subparsers.add_parser(module.id, help=f"{module.name} operations")
        module_parser.add_argument("action", choices=MODULE_ACTIONS)
        module_parser.add_argument("--instance", default=DEFAULT_INSTANCE, help="Instance name")
        module_parser.add_argument(
            "--type", dest="content_types", action="append", default=None,
            help=f"Restrict to a content type ({', '.join(module.content_type_names)})",
        )

    return parser


def cmd_init(config: ConfigManager, registry: ModuleRegistry, args: argparse.Namespace) -> int:
    instance_dir = config.init_instance(args.instance, registry)
    print(f"Initialized instance '{args.instance}' at {instance_dir}")
    print(f"Edit {instance_dir / 'config.yaml'} or export XSIAM_FQDN, XSIAM_API_KEY, XSIAM_API_KEY_ID")
    return 0


async def _probe(config: ConfigManager, instance: str, module_ids: list[str], registry: ModuleRegistry) -> None:
    instance_config = config.load(instance)
    for module_id in module_ids:
        try:
            credentials = instance_config.module_config(module_id).credentials()
        except ConfigError as e:
            print(f"  {module_id:8s} not configured: {e}")
            continue
        async with ModuleClient(credentials, registry.get(module_id).base_api_path) as client:
            ok, message = await client.test_connectivity()
        print(f"  {module_id:8s} {'OK' if ok else 'FAIL'}: {message}")


def cmd_status(config: ConfigManager, registry: ModuleRegistry, args: argparse.Namespace) -> int:
    instances = [args.instance] if args.instance else config.list_instances()
    if not instances:
        print("No instances found. Run 'gcgit init --instance NAME' first")
        return 1

    for instance in instances:
        instance_config = config.load(instance)
        print(f"Instance: {instance_config.instance_name}")
        changed = GitManager(config.instance_dir(instance)).modified_object_files()
        if changed:
            print("  Local changes:")
            for path, code in sorted(changed.items()):
                print(f"    {code} {path}")
        else:
            print("  No local changes")
        modules = [m for m in instance_config.enabled_modules() if m in registry.module_ids()]
        asyncio.run(_probe(config, instance, modules, registry))
    return 0


def cmd_validate(config: ConfigManager, registry: ModuleRegistry, args: argparse.Namespace) -> int:
    files = args.files
    if not files:
        store = InstanceStore(config.instance_dir(args.instance))
        files = []
        for module in registry.all_modules():
            files.extend(store.list_object_files(module.id, module.content_type_names))
    if not files:
        print("No object files to validate")
        return 0

    results = validate_object_files(files, registry)
    failures = 0
    for path, problem in results.items():
        if problem is None:
            print(f"OK    {path}")
        else:
            failures += 1
            print(f"ERROR {path}: {problem}")
    print(f"{len(results) - failures} valid, {failures} invalid")
    return 1 if failures else 0


async def run_module_action(driver: SyncDriver, action: str) -> int:
    if action == "pull":
        summary = await driver.pull()
        print(summary.summary())
        return 1 if summary.failures else 0

    if action == "diff":
        report = await driver.diff()
        print(report.summary())
        return 1 if report.failed else 0

    results = await driver.test_endpoints()
    for content_type, (ok, message) in results.items():
        print(f"  {'OK  ' if ok else 'FAIL'} {content_type:25s} {message}")
    return 0 if all(ok for ok, _ in results.values()) else 1


async def _run_module(
    instance_dir: Path,
    module: Module,
    credentials: Credentials,
    definitions: Optional[list[ContentTypeDefinition]],
    action: str,
) -> int:
    async with ModuleClient(credentials, module.base_api_path) as client:
        driver = SyncDriver(instance_dir, module, client, content_types=definitions)
        return await run_module_action(driver, action)


def cmd_module(config: ConfigManager, registry: ModuleRegistry, args: argparse.Namespace) -> int:
    module = registry.get(args.command)
    module_config = config.load(args.instance).module_config(module.id)
    if not module_config.enabled:
        raise ConfigError(f"Module '{module.id}' is disabled for instance '{args.instance}'")
    credentials = module_config.credentials()

    definitions = None
    if args.content_types:
        definitions = [registry.validate_content_type(module.id, name) for name in args.content_types]

    instance_dir = config.instance_dir(args.instance)
    with InstanceLock(instance_dir):
        return asyncio.run(_run_module(instance_dir, module, credentials, definitions, args.action))


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    registry = ModuleRegistry.load()
    args = build_parser(registry).parse_args(argv)
    setup_logging(verbose=args.verbose)
    config = ConfigManager(args.root)

    handlers = {"init": cmd_init, "status": cmd_status, "validate": cmd_validate}
    handler = handlers.get(args.command, cmd_module)
    try:
        return handler(config, registry, args)
    except (ConfigError, LockError, GitError, UnknownContentTypeError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
