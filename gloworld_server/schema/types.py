"""
Core type definitions for the Gloworld schema.

This module defines:
- Closed enums for connection status, generated file kind and AI job status
- ColumnDef: One column of a table
- TableDef: A table definition that renders idempotent DDL
- IndexDef: A named index definition

Invariants:
    - Enum members are closed sets; the store enforces them with CHECK constraints
    - Definitions are frozen; the fingerprint changes whenever the shape changes
    - Rendered DDL is always "IF NOT EXISTS" so it can be re-executed

How to change safely:
    - Adding a column changes the table shape; existing targets report a conflict
      until an operator migrates them
    - Foreign keys, UNIQUE and CHECK constraints are part of the shape too
    - Enum values may be appended; never remove one that rows may hold

Example:
    >>> projects = TableDef(
    ...     name="projects",
    ...     columns=(
    ...         ColumnDef("id", "TEXT", nullable=False, primary_key=True),
    ...         ColumnDef("name", "TEXT", nullable=False),
    ...     ),
    ... )
    >>> projects.to_ddl().startswith("CREATE TABLE IF NOT EXISTS projects")
    True
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConnectionStatus(str, Enum):
    """Status of an external service connection."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class FileKind(str, Enum):
    """Kind of a generated file artifact."""

    COMPONENT = "component"
    PAGE = "page"
    ASSET = "asset"
    SCHEMA = "schema"
    MIGRATION = "migration"


class AiJobStatus(str, Enum):
    """Lifecycle status of an AI job.

    Jobs move queued -> running -> succeeded | failed, never backwards.
    """

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AiJobStatus.SUCCEEDED, AiJobStatus.FAILED)

    def can_transition_to(self, target: AiJobStatus) -> bool:
        """Check whether moving from this status to target is allowed.

        Staying in the same non-terminal status is allowed so counters can be
        updated while a job runs.
        """
        if self.is_terminal:
            return False
        if target == self:
            return True
        return target in _AI_JOB_TRANSITIONS[self]


_AI_JOB_TRANSITIONS: dict[AiJobStatus, frozenset[AiJobStatus]] = {
    AiJobStatus.QUEUED: frozenset({AiJobStatus.RUNNING}),
    AiJobStatus.RUNNING: frozenset({AiJobStatus.SUCCEEDED, AiJobStatus.FAILED}),
    AiJobStatus.SUCCEEDED: frozenset(),
    AiJobStatus.FAILED: frozenset(),
}


def definition_digest(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def normalize_check(clause: str) -> str:
    """Canonical form of a CHECK clause, insensitive to whitespace."""
    clause = re.sub(r"\s+", " ", clause.strip())
    return re.sub(r"\s*([(),])\s*", r"\1", clause)


@dataclass(frozen=True)
class ColumnDef:
    """Definition of a single column.

    Attributes:
        name: Column name
        sql_type: SQLite declared type (TEXT, INTEGER, REAL)
        nullable: Whether NULL is allowed
        primary_key: Whether this column is the primary key
        unique: Whether the column carries a UNIQUE constraint
        default: SQL literal used as the column default
        choices: Closed set of allowed values (rendered as CHECK)
        references: Foreign key target as "table(column)"
        on_delete: Foreign key delete action (CASCADE, SET NULL)
    """

    name: str
    sql_type: str
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    default: str | None = None
    choices: tuple[str, ...] | None = None
    references: str | None = None
    on_delete: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Column name cannot be empty")
        if self.sql_type not in ("TEXT", "INTEGER", "REAL"):
            raise ValueError(f"Unsupported sql_type '{self.sql_type}' for column '{self.name}'")
        if self.on_delete and not self.references:
            raise ValueError(f"on_delete requires references for column '{self.name}'")

    def to_sql(self) -> str:
        """Render the column clause of a CREATE TABLE statement."""
        parts = [self.name, self.sql_type]
        if not self.nullable:
            parts.append("NOT NULL")
        if self.primary_key:
            parts.append("PRIMARY KEY")
        if self.unique:
            parts.append("UNIQUE")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        check = self.check_clause()
        if check:
            parts.append(check)
        if self.references:
            parts.append(f"REFERENCES {self.references}")
            if self.on_delete:
                parts.append(f"ON DELETE {self.on_delete}")
        return " ".join(parts)

    def check_clause(self) -> str | None:
        if not self.choices:
            return None
        allowed = ", ".join(f"'{c}'" for c in self.choices)
        return f"CHECK ({self.name} IN ({allowed}))"

    def foreign_key(self) -> list[str | None] | None:
        """Foreign key as PRAGMA foreign_key_list reports it.

        Returns:
            [from_column, target_table, target_column, on_delete], or None
        """
        if not self.references:
            return None
        table, _, rest = self.references.partition("(")
        target_column = rest.rstrip(")").strip() or None
        return [self.name, table.strip(), target_column, self.on_delete or "NO ACTION"]

    def shape(self) -> tuple[str, str, bool, bool]:
        """Shape as reported by PRAGMA table_info (name, type, notnull, pk)."""
        return (self.name, self.sql_type, not self.nullable, self.primary_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sql_type": self.sql_type,
            "nullable": self.nullable,
            "primary_key": self.primary_key,
            "unique": self.unique,
            "default": self.default,
            "choices": list(self.choices) if self.choices else None,
            "references": self.references,
            "on_delete": self.on_delete,
        }


@dataclass(frozen=True)
class TableDef:
    """Definition of a table.

    Attributes:
        name: Table name
        columns: Ordered column definitions
        unique_together: Multi-column unique constraints
        description: Human-readable description
    """

    name: str
    columns: tuple[ColumnDef, ...]
    unique_together: tuple[tuple[str, ...], ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.columns:
            raise ValueError(f"Table '{self.name}' has no columns")
        names = [c.name for c in self.columns]
        if len(names) != len(set(names)):
            raise ValueError(f"Table '{self.name}' has duplicate column names")
        for group in self.unique_together:
            unknown = set(group) - set(names)
            if unknown:
                raise ValueError(f"Table '{self.name}' unique constraint uses unknown columns {unknown}")

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def get_column(self, name: str) -> ColumnDef | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def to_ddl(self) -> str:
        """Render an idempotent CREATE TABLE statement."""
        clauses = [c.to_sql() for c in self.columns]
        for group in self.unique_together:
            clauses.append(f"UNIQUE ({', '.join(group)})")
        body = ",\n    ".join(clauses)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n)"

    def shape(self) -> dict[str, list]:
        """Everything an existing table must match to be adopted.

        Columns come from PRAGMA table_info, foreign keys from
        PRAGMA foreign_key_list, unique constraints from the automatic
        indexes in PRAGMA index_list, and checks from the stored DDL.
        """
        foreign_keys = []
        checks = []
        unique = [list(group) for group in self.unique_together]
        for column in self.columns:
            foreign_key = column.foreign_key()
            if foreign_key:
                foreign_keys.append(foreign_key)
            check = column.check_clause()
            if check:
                checks.append(normalize_check(check))
            if column.unique:
                unique.append([column.name])
        return {
            "columns": [list(c.shape()) for c in self.columns],
            "foreign_keys": sorted(foreign_keys),
            "unique": sorted(unique),
            "checks": sorted(checks),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "unique_together": [list(g) for g in self.unique_together],
        }

    def fingerprint(self) -> str:
        return definition_digest(self.to_dict())


@dataclass(frozen=True)
class IndexDef:
    """Definition of a named index.

    Attributes:
        name: Index name (unique across the database)
        table: Indexed table
        columns: Indexed columns, in order
        unique: Whether the index enforces uniqueness
    """

    name: str
    table: str
    columns: tuple[str, ...]
    unique: bool = False

    def __post_init__(self) -> None:
        if not self.columns:
            raise ValueError(f"Index '{self.name}' has no columns")

    def to_ddl(self) -> str:
        kind = "UNIQUE INDEX" if self.unique else "INDEX"
        return (
            f"CREATE {kind} IF NOT EXISTS {self.name} "
            f"ON {self.table}({', '.join(self.columns)})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table,
            "columns": list(self.columns),
            "unique": self.unique,
        }

    def fingerprint(self) -> str:
        return definition_digest(self.to_dict())
