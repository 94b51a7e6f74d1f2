"""
Schema module for Gloworld.

This module provides:
- Column, table and index definitions rendering idempotent DDL
- The declared tables of the ownership hierarchy
- Input models for guarded writes
- The routine registry and the installed-object catalog

Invariants:
    - Table shapes are declared once, in tables.py
    - Enum columns are closed sets enforced by CHECK constraints
    - Routines are registered before the registry is frozen

How to change safely:
    - Add columns only together with an operator migration
    - Append enum values; never remove one
"""

from .catalog import CATALOG_TABLE, Catalog, CatalogEntry, CatalogKind
from .routines import (
    DuplicateRoutineError,
    RegistryFrozenError,
    RoutineDef,
    RoutineKind,
    RoutineRegistry,
)
from .tables import INDEXES, TABLES, get_table
from .types import (
    AiJobStatus,
    ColumnDef,
    ConnectionStatus,
    FileKind,
    IndexDef,
    TableDef,
)

__all__ = [
    "CATALOG_TABLE",
    "Catalog",
    "CatalogEntry",
    "CatalogKind",
    "DuplicateRoutineError",
    "RegistryFrozenError",
    "RoutineDef",
    "RoutineKind",
    "RoutineRegistry",
    "INDEXES",
    "TABLES",
    "get_table",
    "AiJobStatus",
    "ColumnDef",
    "ConnectionStatus",
    "FileKind",
    "IndexDef",
    "TableDef",
]
