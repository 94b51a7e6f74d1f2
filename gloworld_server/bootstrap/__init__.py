"""
Bootstrap module for Gloworld - deployment-time installation.

This module handles:
- Named bootstrap steps (tables, indexes, functions, policies, triggers, seeds)
- The default ordered plan
- The applier that runs a plan and reports what changed

Invariants:
    - Every step is idempotent
    - No step drops data
    - A step with a missing dependency fails instead of installing

How to change safely:
    - Append steps after their dependencies
    - Apply new plans twice in tests
"""

from .applier import BootstrapApplier, BootstrapReport
from .plan import default_plan
from .steps import (
    BootstrapStep,
    CreateIndex,
    CreateTable,
    InstallPolicy,
    InstallTrigger,
    ReplaceFunction,
    SeedRow,
    StepContext,
    StepOutcome,
)

__all__ = [
    "BootstrapApplier",
    "BootstrapReport",
    "BootstrapStep",
    "CreateIndex",
    "CreateTable",
    "InstallPolicy",
    "InstallTrigger",
    "ReplaceFunction",
    "SeedRow",
    "StepContext",
    "StepOutcome",
    "default_plan",
]
