"""
Bootstrap applier for Gloworld.

The BootstrapApplier runs an ordered list of steps against the store at
deployment time. Each step runs in its own transaction, so a failing step
leaves every earlier step installed and nothing of its own.

Invariants:
    - Applying the plan N >= 1 times yields the state of one application
    - No step drops data; an incompatible existing object stops the run
      with BootstrapConflict
    - Steps run in declaration order; a step whose dependency is missing
      fails with BootstrapOrderError
    - Nothing is retried

How to change safely:
    - Append new steps after the objects they depend on
    - Changing a declared table shape requires an operator migration first
    - Test new plans by applying them twice
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..errors import BootstrapConflict, BootstrapOrderError
from ..schema.catalog import Catalog
from ..schema.routines import RoutineRegistry
from ..store.entity_store import EntityStore
from .steps import BootstrapStep, StepContext, StepOutcome

logger = logging.getLogger(__name__)


@dataclass
class BootstrapReport:
    """Result of one bootstrap run.

    Attributes:
        applied: Names of steps that changed something
        unchanged: Names of steps that were already current
    """

    applied: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)

    @property
    def total(self) -> int:
        return len(self.applied) + len(self.unchanged)


class BootstrapApplier:
    """Applies bootstrap steps in order.

    Example:
        >>> applier = BootstrapApplier(store, default_plan(), Catalog(), routines)
        >>> report = await applier.apply()
        >>> report.applied
        ['table:principals', ...]
    """

    def __init__(
        self,
        store: EntityStore,
        steps: Sequence[BootstrapStep],
        catalog: Catalog,
        routines: RoutineRegistry,
    ) -> None:
        names = [step.name for step in steps]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Duplicate bootstrap steps: {sorted(duplicates)}")

        self.store = store
        self.steps = list(steps)
        self.catalog = catalog
        self.routines = routines

    async def apply(self) -> BootstrapReport:
        """Run every step.

        Returns:
            BootstrapReport listing applied and unchanged steps

        Raises:
            BootstrapConflict: If an existing object has an incompatible shape
            BootstrapOrderError: If a step's dependency is missing
        """
        with self.store.transaction() as conn:
            self.catalog.ensure(conn)

        report = BootstrapReport()
        for step in self.steps:
            try:
                with self.store.transaction() as conn:
                    context = StepContext(
                        conn=conn,
                        catalog=self.catalog,
                        routines=self.routines,
                        now=self.store.now(),
                    )
                    outcome = step.apply(context)
            except (BootstrapConflict, BootstrapOrderError) as e:
                logger.error(
                    f"Bootstrap step {step.name} failed: {e}",
                    extra={"step": step.name, "code": e.code},
                )
                raise

            if outcome == StepOutcome.APPLIED:
                report.applied.append(step.name)
            else:
                report.unchanged.append(step.name)

        logger.info(
            "Bootstrap complete",
            extra={"applied": len(report.applied), "unchanged": len(report.unchanged)},
        )
        return report

    async def pending(self) -> list[str]:
        """Names of steps whose object is not in its declared state."""
        with self.store.transaction(immediate=False) as conn:
            context = StepContext(
                conn=conn,
                catalog=self.catalog,
                routines=self.routines,
                now=self.store.now(),
            )
            return [step.name for step in self.steps if not step.is_current(context)]
