"""
Installed-object catalog.

The catalog records every object the bootstrap applier has installed
(tables, indexes, functions, policies, triggers, seeds) together with the
fingerprint of the definition that was installed. The policy evaluator and
the trigger dispatcher read their active rule sets from here, so an object
that was never installed is never enforced or fired.

Table schema:
    schema_catalog:
        - kind TEXT (table, index, function, policy, trigger, seed)
        - name TEXT
        - target TEXT (table the object applies to, if any)
        - fingerprint TEXT
        - definition_json TEXT
        - installed_at INTEGER (Unix ms)
        - PRIMARY KEY (kind, name)

Invariants:
    - (kind, name) is unique; installing again replaces the entry
    - A missing catalog table reads as "nothing installed"
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

CATALOG_TABLE = "schema_catalog"


class CatalogKind(str, Enum):
    TABLE = "table"
    INDEX = "index"
    FUNCTION = "function"
    POLICY = "policy"
    TRIGGER = "trigger"
    SEED = "seed"


@dataclass
class CatalogEntry:
    """One installed object.

    Attributes:
        kind: Object kind
        name: Object name, unique per kind
        target: Table the object applies to (None for functions)
        fingerprint: Fingerprint of the installed definition
        definition: Definition details (operation, predicates, event, ...)
        installed_at: Install timestamp (Unix ms)
    """

    kind: CatalogKind
    name: str
    target: str | None
    fingerprint: str
    definition: dict[str, Any] = field(default_factory=dict)
    installed_at: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CatalogEntry:
        return cls(
            kind=CatalogKind(row["kind"]),
            name=row["name"],
            target=row["target"],
            fingerprint=row["fingerprint"],
            definition=json.loads(row["definition_json"]),
            installed_at=row["installed_at"],
        )


class Catalog:
    """Reads and writes the schema_catalog table.

    All methods take an open connection so they participate in the
    caller's transaction.
    """

    def ensure(self, conn: sqlite3.Connection) -> None:
        """Create the catalog table if it is absent."""
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {CATALOG_TABLE} (
                kind TEXT NOT NULL,
                name TEXT NOT NULL,
                target TEXT,
                fingerprint TEXT NOT NULL,
                definition_json TEXT NOT NULL DEFAULT '{{}}',
                installed_at INTEGER NOT NULL,
                PRIMARY KEY (kind, name)
            )
            """
        )

    def exists(self, conn: sqlite3.Connection) -> bool:
        cursor = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (CATALOG_TABLE,),
        )
        return cursor.fetchone() is not None

    def get(self, conn: sqlite3.Connection, kind: CatalogKind, name: str) -> CatalogEntry | None:
        if not self.exists(conn):
            return None
        cursor = conn.execute(
            f"SELECT * FROM {CATALOG_TABLE} WHERE kind = ? AND name = ?",
            (kind.value, name),
        )
        row = cursor.fetchone()
        return CatalogEntry.from_row(row) if row else None

    def is_installed(self, conn: sqlite3.Connection, kind: CatalogKind, name: str) -> bool:
        return self.get(conn, kind, name) is not None

    def put(self, conn: sqlite3.Connection, entry: CatalogEntry) -> None:
        """Insert or replace an entry."""
        conn.execute(
            f"""
            INSERT OR REPLACE INTO {CATALOG_TABLE}
                (kind, name, target, fingerprint, definition_json, installed_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.kind.value,
                entry.name,
                entry.target,
                entry.fingerprint,
                json.dumps(entry.definition, sort_keys=True),
                entry.installed_at,
            ),
        )

    def drop(self, conn: sqlite3.Connection, kind: CatalogKind, name: str) -> bool:
        if not self.exists(conn):
            return False
        cursor = conn.execute(
            f"DELETE FROM {CATALOG_TABLE} WHERE kind = ? AND name = ?",
            (kind.value, name),
        )
        return cursor.rowcount > 0

    def entries(
        self,
        conn: sqlite3.Connection,
        kind: CatalogKind | None = None,
        target: str | None = None,
    ) -> list[CatalogEntry]:
        if not self.exists(conn):
            return []
        query = f"SELECT * FROM {CATALOG_TABLE} WHERE 1 = 1"
        params: list[Any] = []
        if kind is not None:
            query += " AND kind = ?"
            params.append(kind.value)
        if target is not None:
            query += " AND target = ?"
            params.append(target)
        query += " ORDER BY kind, name"
        return [CatalogEntry.from_row(row) for row in conn.execute(query, params)]

    def policies_for(
        self, conn: sqlite3.Connection, table: str, operation: str
    ) -> list[CatalogEntry]:
        """Installed policies on a table for one operation."""
        return [
            entry
            for entry in self.entries(conn, CatalogKind.POLICY, table)
            if entry.definition.get("operation") == operation
        ]

    def triggers_for(self, conn: sqlite3.Connection, table: str, event: str) -> list[CatalogEntry]:
        """Installed triggers on a table for one event, in name order."""
        return [
            entry
            for entry in self.entries(conn, CatalogKind.TRIGGER, table)
            if entry.definition.get("event") == event
        ]
