# src/main.py — v2
"""CLI entry point: validate, run, cache commands.

Usage:
    conveyor validate <definitions_dir>
    conveyor run <definitions_dir> <pipeline> --branch B --commit SHA [options]
    conveyor cache list [prefix]
    conveyor cache delete <key>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from conveyor.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="conveyor",
        description=f"conveyor v{__version__}: CI/CD pipeline promotion engine",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- validate ---
    p_validate = subparsers.add_parser(
        "validate", help="Validate a directory of pipeline definitions",
    )
    p_validate.add_argument("directory", type=Path, help="Definitions directory")
    p_validate.set_defaults(func=_cmd_validate)

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Trigger a pipeline and wait for its promotion chain",
    )
    p_run.add_argument("directory", type=Path, help="Definitions directory")
    p_run.add_argument("pipeline", help="Name of the pipeline to trigger")
    p_run.add_argument("--branch", required=True, help="Source branch")
    p_run.add_argument("--commit", required=True, help="Commit SHA")
    p_run.add_argument(
        "--workflow-id", default=None,
        help="Reuse a workflow id (default: generate a new one)",
    )
    p_run.add_argument(
        "--promote", action="append", default=[], metavar="NAME",
        help="Fire this manual promotion when it becomes available (repeatable)",
    )
    p_run.add_argument(
        "--report-dir", type=Path, default=None,
        help="Write a JSON report per pipeline run to this directory",
    )
    p_run.add_argument(
        "--show-output", action="store_true",
        help="Print the output of jobs that did not pass",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect the artifact cache")
    cache_sub = p_cache.add_subparsers(dest="cache_command")

    p_list = cache_sub.add_parser("list", help="List cache keys")
    p_list.add_argument("prefix", nargs="?", default="", help="Key prefix filter")
    p_list.set_defaults(func=_cmd_cache_list)

    p_delete = cache_sub.add_parser("delete", help="Delete a cache entry")
    p_delete.add_argument("key", help="Cache key")
    p_delete.set_defaults(func=_cmd_cache_delete)

    return parser


async def _cmd_validate(args: argparse.Namespace) -> int:
    """Load and validate every definition in a directory."""
    from conveyor.core.models import TriggerMode
    from conveyor.definitions.loader import DefinitionCatalog, DefinitionError

    try:
        catalog = DefinitionCatalog.from_directory(args.directory)
    except DefinitionError as exc:
        logger.error("Invalid definitions: %s", exc)
        return 1

    print(f"\n{len(catalog)} pipeline definitions in {args.directory}:")
    for name in catalog.names:
        definition = catalog.get(name)
        jobs = sum(len(b.jobs) for b in definition.blocks)
        print(f"  {name:25s} | {len(definition.blocks):2d} blocks | {jobs:3d} jobs")
        for rule in definition.promotions:
            arrow = "=>" if rule.mode == TriggerMode.AUTO else "->"
            print(f"      {arrow} {rule.pipeline} ({rule.name}, {rule.mode.value})")
    return 0


async def _cmd_run(args: argparse.Namespace) -> int:
    """Trigger a pipeline, fire requested manual promotions, print summaries."""
    from conveyor.api.facade import Conveyor
    from conveyor.config.settings import load_settings
    from conveyor.core.models import PipelineStatus, TriggerEvent
    from conveyor.tracking.exporter import export_run_summary

    overrides: dict[str, object] = {"definitions_dir": args.directory}
    if args.report_dir is not None:
        overrides["report_dir"] = args.report_dir
    settings = load_settings(**overrides)

    event = TriggerEvent(
        branch=args.branch,
        commit_sha=args.commit,
        workflow_id=args.workflow_id,
        source="manual",
    )
    requested = set(args.promote)

    async with Conveyor.from_settings(settings) as conveyor:
        first_id = await conveyor.trigger(args.pipeline, event)
        await conveyor.wait_idle()

        # Manual promotions only become available once their source finished
        fired = True
        while fired:
            fired = False
            for run in conveyor.runs(conveyor.get(first_id).workflow_id):
                for promotion in conveyor.list_available(run.id):
                    if promotion.name in requested:
                        await conveyor.fire(run.id, promotion.name)
                        fired = True
            await conveyor.wait_idle()

        runs = conveyor.runs(conveyor.get(first_id).workflow_id)
        for run in runs:
            print()
            print(export_run_summary(run, show_output=args.show_output))
            for promotion in conveyor.list_available(run.id):
                print(f"  available: {promotion.name} -> {promotion.target}")

    return 0 if all(r.status == PipelineStatus.PASSED for r in runs) else 1


async def _cmd_cache_list(args: argparse.Namespace) -> int:
    """List cache keys of the configured backend."""
    from conveyor.cache.cache_factory import create_cache_store
    from conveyor.config.settings import load_settings

    store = create_cache_store(load_settings())
    try:
        keys = await store.list_keys(args.prefix)
    finally:
        store.close()

    for key in keys:
        print(key)
    logger.info("%d cache entries", len(keys))
    return 0


async def _cmd_cache_delete(args: argparse.Namespace) -> int:
    """Delete one cache entry. Deleting a missing key is not an error."""
    from conveyor.cache.cache_factory import create_cache_store
    from conveyor.config.settings import load_settings

    store = create_cache_store(load_settings())
    try:
        await store.delete(args.key)
    finally:
        store.close()
    logger.info("Cache entry %s deleted", args.key)
    return 0


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage from settings, -v forcing DEBUG."""
    from conveyor.config.settings import Settings
    from conveyor.logging.logger import setup_logging

    settings = Settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
