"""
The default bootstrap plan.

Order: tables, indexes, functions, policies, triggers, seed rows. Tables
are listed parents first so every foreign key target exists before the
table referencing it.
"""

from __future__ import annotations

from ..config import PUBLIC_ASSETS_BUCKET
from ..definitions import POLICIES, ROUTINES, TRIGGERS
from ..schema.tables import INDEXES, TABLES
from .steps import (
    BootstrapStep,
    CreateIndex,
    CreateTable,
    InstallPolicy,
    InstallTrigger,
    ReplaceFunction,
    SeedRow,
)


def default_plan(public_bucket: str = PUBLIC_ASSETS_BUCKET) -> list[BootstrapStep]:
    """Build the ordered step list for a full deployment.

    Args:
        public_bucket: Id (and name) of the publicly readable assets bucket
    """
    steps: list[BootstrapStep] = []
    steps.extend(CreateTable(table) for table in TABLES)
    steps.extend(CreateIndex(index) for index in INDEXES)
    steps.extend(ReplaceFunction(routine.name) for routine in ROUTINES)
    steps.extend(InstallPolicy(rule) for rule in POLICIES)
    steps.extend(InstallTrigger(rule) for rule in TRIGGERS)
    steps.append(
        SeedRow("storage_buckets", {"id": public_bucket, "name": public_bucket, "public": 1})
    )
    return steps
