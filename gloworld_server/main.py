"""
Gloworld Server - wiring and command line entry point.

This module assembles the components around one SQLite database:
- Routine registry (frozen after registration)
- Catalog of installed objects
- Trigger dispatcher and entity store
- Policy evaluator and the guarded operations
- Identity events and the verification action
- Bootstrap applier with the default plan

Usage:
    gloworld bootstrap        # apply the bootstrap plan
    gloworld status           # list pending bootstrap steps and row counts

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - All components share one catalog, one routine registry and one clock
    - The routine registry is frozen before any operation runs
    - Bootstrap conflicts and order errors exit non-zero

How to change safely:
    - Add components to Gloworld, keep main() thin
    - Keep CLI output stable for deployment scripts
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import json_log_formatter
from pydantic import ValidationError

from .access import GuardedStore, IdentityEvents, VerificationAction
from .bootstrap import BootstrapApplier, default_plan
from .config import Settings
from .definitions import build_routines
from .errors import BootstrapConflict, BootstrapOrderError
from .policy import PolicyEvaluator
from .schema import Catalog
from .store import Clock, EntityStore, TriggerDispatcher, system_clock

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Server settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class Gloworld:
    """All Gloworld components around one database.

    Attributes:
        settings: Settings in effect
        routines: Frozen routine registry
        catalog: Installed-object catalog
        store: Entity store with trigger dispatch
        evaluator: Policy evaluator
        guarded: Policy-checked caller operations
        identity: Identity provider events
        verification: Connection verification action
        bootstrap: Applier for the default plan

    Example:
        >>> app = Gloworld(Settings(database_path="/tmp/gloworld.db"))
        >>> await app.bootstrap.apply()
        >>> await app.identity.principal_created("u1")
        >>> project = await app.guarded.create_project(Caller.user("u1"), {"name": "Site"})
    """

    def __init__(self, settings: Settings | None = None, clock: Clock | None = None) -> None:
        self.settings = settings or Settings()
        clock = clock or system_clock

        self.routines = build_routines()
        self.catalog = Catalog()
        self.triggers = TriggerDispatcher(self.catalog, self.routines, clock)
        self.store = EntityStore.from_settings(self.settings, clock=clock, triggers=self.triggers)
        self.evaluator = PolicyEvaluator(self.catalog, self.routines)

        self.guarded = GuardedStore(self.store, self.evaluator)
        self.identity = IdentityEvents(self.store, self.evaluator)
        self.verification = VerificationAction(self.store)
        self.bootstrap = BootstrapApplier(
            self.store,
            default_plan(self.settings.public_bucket),
            self.catalog,
            self.routines,
        )


async def _run_bootstrap(app: Gloworld) -> int:
    try:
        report = await app.bootstrap.apply()
    except (BootstrapConflict, BootstrapOrderError) as e:
        print(f"Bootstrap FAILED: {e.message}", file=sys.stderr)
        if e.details:
            print(json.dumps(e.details, indent=2, sort_keys=True, default=str), file=sys.stderr)
        return 1

    print(f"Bootstrap complete: {len(report.applied)} applied, {len(report.unchanged)} unchanged")
    for name in report.applied:
        print(f"  [APPLIED] {name}")
    return 0


async def _run_status(app: Gloworld, output_format: str) -> int:
    pending = await app.bootstrap.pending()
    stats = app.store.get_stats()

    if output_format == "json":
        print(json.dumps({"pending": pending, "rows": stats}, indent=2, sort_keys=True))
    else:
        if pending:
            print(f"{len(pending)} pending bootstrap step(s):")
            for name in pending:
                print(f"  - {name}")
        else:
            print("Bootstrap is up to date")
        for table, count in stats.items():
            print(f"  {table}: {count}")

    return 1 if pending else 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Gloworld server tool")
    parser.add_argument("--database", help="SQLite database path (overrides GLOWORLD_DATABASE_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("bootstrap", help="Apply the bootstrap plan")

    status_parser = subparsers.add_parser("status", help="Show pending bootstrap steps")
    status_parser.add_argument("--format", choices=["text", "json"], default="text")

    args = parser.parse_args(argv)

    try:
        settings = Settings(database_path=args.database) if args.database else Settings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings)
    settings.log_config()

    app = Gloworld(settings)
    if args.command == "bootstrap":
        sys.exit(asyncio.run(_run_bootstrap(app)))
    elif args.command == "status":
        sys.exit(asyncio.run(_run_status(app, args.format)))


if __name__ == "__main__":
    main()
