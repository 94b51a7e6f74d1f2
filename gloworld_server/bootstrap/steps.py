"""
Bootstrap steps.

Each step brings one named object to its declared state and is idempotent
on its own:

    CreateTable      create if absent; conflict if present with other columns or constraints
    CreateIndex      create if absent; conflict if present with another shape
    ReplaceFunction  record the routine under its name, replacing any older one
    InstallPolicy    drop and recreate the policy when its definition changed
    InstallTrigger   drop and recreate the trigger when its definition changed
    SeedRow          insert-or-ignore one row

Steps check their dependencies before touching anything. A policy whose
table or predicate function is not installed raises BootstrapOrderError
rather than leaving a rule that references nothing.

Invariants:
    - apply() never drops a table, an index or a row
    - apply() on an object already in its declared state changes nothing
    - is_current() only reads
"""

from __future__ import annotations

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import BootstrapConflict, BootstrapOrderError
from ..policy.rules import PolicyRule
from ..schema.catalog import Catalog, CatalogEntry, CatalogKind
from ..schema.routines import RoutineRegistry
from ..schema.tables import get_table
from ..schema.types import IndexDef, TableDef, definition_digest, normalize_check
from ..store.triggers import TriggerRule

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"


@dataclass
class StepContext:
    """What a step runs against.

    Attributes:
        conn: Connection of the step's transaction
        catalog: Installed-object catalog
        routines: Registered routines
        now: Clock reading for installed_at and seeded timestamps (Unix ms)
    """

    conn: sqlite3.Connection
    catalog: Catalog
    routines: RoutineRegistry
    now: int


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    )
    return cursor.fetchone() is not None


def _check_clauses(sql: str) -> list[str]:
    """CHECK clauses of a stored CREATE TABLE statement."""
    clauses = []
    for match in re.finditer(r"\bCHECK\s*\(", sql, re.IGNORECASE):
        depth = 0
        quoted = False
        for end in range(match.end() - 1, len(sql)):
            char = sql[end]
            if char == "'":
                quoted = not quoted
            elif quoted:
                continue
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    clauses.append(normalize_check(sql[match.start() : end + 1]))
                    break
    return clauses


def _table_shape(conn: sqlite3.Connection, name: str) -> dict[str, list]:
    # PRAGMA table_info rows: (cid, name, type, notnull, dflt_value, pk)
    columns = [
        [row[1], row[2].upper(), bool(row[3]), bool(row[5])]
        for row in conn.execute(f"PRAGMA table_info({name})")
    ]
    # PRAGMA foreign_key_list rows: (id, seq, table, from, to, on_update, on_delete, match)
    foreign_keys = [
        [row[3], row[2], row[4], row[6].upper()]
        for row in conn.execute(f"PRAGMA foreign_key_list({name})")
    ]
    # Origin 'u' marks indexes backing UNIQUE constraints of the table itself
    unique = [
        [r[2] for r in conn.execute(f"PRAGMA index_info({row[1]})")]
        for row in conn.execute(f"PRAGMA index_list({name})")
        if row[3] == "u"
    ]
    sql = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return {
        "columns": columns,
        "foreign_keys": sorted(foreign_keys),
        "unique": sorted(unique),
        "checks": sorted(_check_clauses(sql[0] if sql and sql[0] else "")),
    }


def _index_shape(conn: sqlite3.Connection, name: str) -> dict[str, Any] | None:
    cursor = conn.execute(
        "SELECT tbl_name FROM sqlite_master WHERE type = 'index' AND name = ?", (name,)
    )
    row = cursor.fetchone()
    if row is None:
        return None
    table = row[0]
    columns = [r[2] for r in conn.execute(f"PRAGMA index_info({name})")]
    unique = any(r[1] == name and bool(r[2]) for r in conn.execute(f"PRAGMA index_list({table})"))
    return {"table": table, "columns": columns, "unique": unique}


class BootstrapStep(ABC):
    """One named, idempotent bootstrap step."""

    kind: CatalogKind

    @property
    @abstractmethod
    def object_name(self) -> str:
        """Name of the object the step installs."""

    @property
    def name(self) -> str:
        return f"{self.kind.value}:{self.object_name}"

    @abstractmethod
    def is_current(self, context: StepContext) -> bool:
        """Whether the object is already in its declared state."""

    @abstractmethod
    def apply(self, context: StepContext) -> StepOutcome:
        """Bring the object to its declared state.

        Raises:
            BootstrapConflict: If an incompatible object holds the name
            BootstrapOrderError: If a dependency is not installed
        """

    def _recorded(self, context: StepContext, fingerprint: str) -> bool:
        entry = context.catalog.get(context.conn, self.kind, self.object_name)
        return entry is not None and entry.fingerprint == fingerprint

    def _record(
        self,
        context: StepContext,
        target: str | None,
        fingerprint: str,
        definition: dict[str, Any],
    ) -> None:
        context.catalog.put(
            context.conn,
            CatalogEntry(
                kind=self.kind,
                name=self.object_name,
                target=target,
                fingerprint=fingerprint,
                definition=definition,
                installed_at=context.now,
            ),
        )

    def _require_table(self, context: StepContext, table: str) -> None:
        if not _table_exists(context.conn, table):
            raise BootstrapOrderError(self.name, f"table {table}")

    def _require_function(self, context: StepContext, function: str) -> None:
        if not context.catalog.is_installed(context.conn, CatalogKind.FUNCTION, function):
            raise BootstrapOrderError(self.name, f"function {function}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.object_name!r})"


class CreateTable(BootstrapStep):
    kind = CatalogKind.TABLE

    def __init__(self, table: TableDef) -> None:
        self.table = table

    @property
    def object_name(self) -> str:
        return self.table.name

    def _referenced_tables(self) -> list[str]:
        referenced = []
        for column in self.table.columns:
            if column.references:
                target = column.references.split("(", 1)[0]
                if target != self.table.name:
                    referenced.append(target)
        return referenced

    def is_current(self, context: StepContext) -> bool:
        if not _table_exists(context.conn, self.table.name):
            return False
        if _table_shape(context.conn, self.table.name) != self.table.shape():
            return False
        return self._recorded(context, self.table.fingerprint())

    def apply(self, context: StepContext) -> StepOutcome:
        for referenced in self._referenced_tables():
            self._require_table(context, referenced)

        fingerprint = self.table.fingerprint()
        if _table_exists(context.conn, self.table.name):
            actual = _table_shape(context.conn, self.table.name)
            expected = self.table.shape()
            if actual != expected:
                raise BootstrapConflict("table", self.table.name, expected=expected, actual=actual)
            if self._recorded(context, fingerprint):
                return StepOutcome.UNCHANGED
            # Matching table created outside bootstrap, adopt it
            self._record(context, self.table.name, fingerprint, self.table.to_dict())
            return StepOutcome.APPLIED

        context.conn.execute(self.table.to_ddl())
        self._record(context, self.table.name, fingerprint, self.table.to_dict())
        logger.info(f"Created table {self.table.name}")
        return StepOutcome.APPLIED


class CreateIndex(BootstrapStep):
    kind = CatalogKind.INDEX

    def __init__(self, index: IndexDef) -> None:
        self.index = index

    @property
    def object_name(self) -> str:
        return self.index.name

    def _expected(self) -> dict[str, Any]:
        return {
            "table": self.index.table,
            "columns": list(self.index.columns),
            "unique": self.index.unique,
        }

    def is_current(self, context: StepContext) -> bool:
        if _index_shape(context.conn, self.index.name) != self._expected():
            return False
        return self._recorded(context, self.index.fingerprint())

    def apply(self, context: StepContext) -> StepOutcome:
        self._require_table(context, self.index.table)

        fingerprint = self.index.fingerprint()
        actual = _index_shape(context.conn, self.index.name)
        if actual is not None:
            expected = self._expected()
            if actual != expected:
                raise BootstrapConflict("index", self.index.name, expected=expected, actual=actual)
            if self._recorded(context, fingerprint):
                return StepOutcome.UNCHANGED
            self._record(context, self.index.table, fingerprint, self.index.to_dict())
            return StepOutcome.APPLIED

        context.conn.execute(self.index.to_ddl())
        self._record(context, self.index.table, fingerprint, self.index.to_dict())
        logger.info(f"Created index {self.index.name} on {self.index.table}")
        return StepOutcome.APPLIED


class ReplaceFunction(BootstrapStep):
    kind = CatalogKind.FUNCTION

    def __init__(self, routine_name: str) -> None:
        self.routine_name = routine_name

    @property
    def object_name(self) -> str:
        return self.routine_name

    def is_current(self, context: StepContext) -> bool:
        routine = context.routines.get(self.routine_name)
        return routine is not None and self._recorded(context, routine.fingerprint())

    def apply(self, context: StepContext) -> StepOutcome:
        routine = context.routines.get(self.routine_name)
        if routine is None:
            raise BootstrapOrderError(self.name, f"registered routine {self.routine_name}")

        fingerprint = routine.fingerprint()
        if self._recorded(context, fingerprint):
            return StepOutcome.UNCHANGED
        self._record(context, None, fingerprint, routine.to_dict())
        logger.info(f"Installed function {routine.name} (version {routine.version})")
        return StepOutcome.APPLIED


class InstallPolicy(BootstrapStep):
    kind = CatalogKind.POLICY

    def __init__(self, rule: PolicyRule) -> None:
        self.rule = rule

    @property
    def object_name(self) -> str:
        return self.rule.name

    def is_current(self, context: StepContext) -> bool:
        return self._recorded(context, self.rule.fingerprint())

    def apply(self, context: StepContext) -> StepOutcome:
        self._require_table(context, self.rule.table)
        for predicate in self.rule.predicates:
            self._require_function(context, predicate)

        fingerprint = self.rule.fingerprint()
        if self._recorded(context, fingerprint):
            return StepOutcome.UNCHANGED

        if context.catalog.drop(context.conn, self.kind, self.rule.name):
            logger.info(f"Dropped outdated policy {self.rule.name}")
        self._record(context, self.rule.table, fingerprint, self.rule.to_dict())
        logger.info(
            f"Installed policy {self.rule.name}",
            extra={"table": self.rule.table, "operation": self.rule.operation.value},
        )
        return StepOutcome.APPLIED


class InstallTrigger(BootstrapStep):
    kind = CatalogKind.TRIGGER

    def __init__(self, rule: TriggerRule) -> None:
        self.rule = rule

    @property
    def object_name(self) -> str:
        return self.rule.name

    def is_current(self, context: StepContext) -> bool:
        return self._recorded(context, self.rule.fingerprint())

    def apply(self, context: StepContext) -> StepOutcome:
        self._require_table(context, self.rule.table)
        self._require_function(context, self.rule.function)

        fingerprint = self.rule.fingerprint()
        if self._recorded(context, fingerprint):
            return StepOutcome.UNCHANGED

        if context.catalog.drop(context.conn, self.kind, self.rule.name):
            logger.info(f"Dropped outdated trigger {self.rule.name}")
        self._record(context, self.rule.table, fingerprint, self.rule.to_dict())
        logger.info(
            f"Installed trigger {self.rule.name}",
            extra={"table": self.rule.table, "event": self.rule.event.value},
        )
        return StepOutcome.APPLIED


class SeedRow(BootstrapStep):
    """Insert one row unless a row with its id exists.

    An existing row is never overwritten, even if its values differ.
    """

    kind = CatalogKind.SEED

    def __init__(self, table: str, row: dict[str, Any]) -> None:
        unknown = set(row) - set(get_table(table).column_names)
        if unknown:
            raise ValueError(f"Seed row for {table} has unknown columns {sorted(unknown)}")
        if "id" not in row:
            raise ValueError(f"Seed row for {table} has no id")
        self.table = table
        self.row = dict(row)

    @property
    def object_name(self) -> str:
        return f"{self.table}/{self.row['id']}"

    def _row_exists(self, conn: sqlite3.Connection) -> bool:
        cursor = conn.execute(f"SELECT 1 FROM {self.table} WHERE id = ?", (self.row["id"],))
        return cursor.fetchone() is not None

    def is_current(self, context: StepContext) -> bool:
        return _table_exists(context.conn, self.table) and self._row_exists(context.conn)

    def apply(self, context: StepContext) -> StepOutcome:
        self._require_table(context, self.table)

        values = dict(self.row)
        table = get_table(self.table)
        for column in ("created_at", "updated_at"):
            if table.get_column(column) is not None:
                values.setdefault(column, context.now)

        columns = list(values)
        cursor = context.conn.execute(
            f"INSERT OR IGNORE INTO {self.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            [values[c] for c in columns],
        )
        if not cursor.rowcount:
            return StepOutcome.UNCHANGED

        self._record(context, self.table, definition_digest(self.row), {"row": self.row})
        logger.info(f"Seeded {self.table} row {self.row['id']}")
        return StepOutcome.APPLIED
