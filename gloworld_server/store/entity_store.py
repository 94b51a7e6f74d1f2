"""
SQLite entity store for Gloworld.

This module manages the database holding principals, profiles, projects
and the rows projects own. It provides:
- Connection management with the configured pragmas
- Explicit transactions (BEGIN IMMEDIATE ... COMMIT / ROLLBACK)
- Row-level insert, update, delete and fetch helpers
- The write-path interception that fires consistency triggers

The store does no authorization. Every caller-facing path goes through
GuardedStore, which runs the policy evaluator inside the same transaction
as the write it guards.

Invariants:
    - Foreign keys are enforced on every connection (cascade deletes rely on it)
    - A mutation and every trigger it fires share one transaction
    - Any exception inside a transaction, cancellation included, rolls it back
    - sqlite IntegrityError surfaces as ConstraintViolation

How to change safely:
    - Keep all writes inside transaction()
    - Column names come from TableDef declarations, never from raw input
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import ConstraintViolation
from ..schema.tables import TABLES, get_table

if TYPE_CHECKING:
    from ..config import Settings
    from .triggers import TriggerDispatcher

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current time in Unix milliseconds."""
    return int(time.time() * 1000)


def _constraint_name(error: sqlite3.IntegrityError) -> str:
    # "UNIQUE constraint failed: profiles.username" -> "profiles.username"
    message = str(error)
    if ": " in message:
        return message.split(": ", 1)[1]
    return message


class EntityStore:
    """SQLite store for all Gloworld tables.

    Thread safety:
        Each transaction opens its own connection.
        SQLite handles concurrent access via WAL mode; BEGIN IMMEDIATE
        serializes writers.

    Example:
        >>> store = EntityStore("/var/lib/gloworld/gloworld.db")
        >>> with store.transaction() as conn:
        ...     row = store.fetch(conn, "projects", project_id)
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
        clock: Clock | None = None,
        triggers: TriggerDispatcher | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
            clock: Millisecond clock, defaults to wall time
            triggers: Dispatcher fired around inserts and updates
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self.clock = clock or system_clock
        self.triggers = triggers

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Clock | None = None,
        triggers: TriggerDispatcher | None = None,
    ) -> EntityStore:
        return cls(
            settings.database_path,
            wal_mode=settings.wal_mode,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_size_pages=settings.cache_size_pages,
            clock=clock,
            triggers=triggers,
        )

    def now(self) -> int:
        return self.clock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE).
                Read-only blocks pass False and get a snapshot on first read.

        Yields:
            Connection bound to the open transaction
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    def _check_columns(self, table: str, values: Mapping[str, Any]) -> None:
        declared = set(get_table(table).column_names)
        unknown = set(values) - declared
        if unknown:
            raise ConstraintViolation(
                f"Unknown columns for {table}: {sorted(unknown)}",
                constraint=f"{table}.columns",
            )

    def fetch(self, conn: sqlite3.Connection, table: str, row_id: str) -> dict[str, Any] | None:
        """Fetch one row by id."""
        get_table(table)
        cursor = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def fetch_where(
        self,
        conn: sqlite3.Connection,
        table: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch rows matching equality filters, newest first."""
        where = where or {}
        self._check_columns(table, where)

        query = f"SELECT * FROM {table}"
        params: list[Any] = []
        if where:
            query += " WHERE " + " AND ".join(f"{column} = ?" for column in where)
            params.extend(where.values())
        query += " ORDER BY created_at DESC, id"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        return [dict(row) for row in conn.execute(query, params)]

    def insert(
        self, conn: sqlite3.Connection, table: str, values: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Insert a row, firing insert triggers.

        Returns:
            The stored row

        Raises:
            ConstraintViolation: If a store constraint rejects the row
            TriggerFailure: If a trigger fails
        """
        new = dict(values)
        self._check_columns(table, new)

        if self.triggers is not None:
            self.triggers.before_insert(conn, table, new)

        columns = list(new)
        placeholders = ", ".join("?" for _ in columns)
        try:
            conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                [new[c] for c in columns],
            )
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(
                f"Insert into {table} rejected: {e}", constraint=_constraint_name(e)
            ) from e

        stored = self.fetch(conn, table, new["id"]) or new

        if self.triggers is not None:
            self.triggers.after_insert(conn, table, stored)

        logger.debug("Inserted row", extra={"table": table, "row_id": new["id"]})
        return stored

    def insert_or_ignore(
        self, conn: sqlite3.Connection, table: str, values: Mapping[str, Any]
    ) -> bool:
        """Insert a row unless its id already exists.

        Insert triggers fire only when the row is actually inserted.

        Returns:
            True if a row was inserted
        """
        if self.fetch(conn, table, values["id"]) is not None:
            return False
        self.insert(conn, table, values)
        return True

    def update(
        self,
        conn: sqlite3.Connection,
        table: str,
        row_id: str,
        changes: Mapping[str, Any],
    ) -> dict[str, Any] | None:
        """Update a row, firing update triggers.

        Before-update triggers see the merged row and may modify it; every
        column they change is written along with the requested changes.

        Returns:
            The stored row, or None if no row has this id
        """
        self._check_columns(table, changes)
        old = self.fetch(conn, table, row_id)
        if old is None:
            return None

        new = {**old, **changes}
        if self.triggers is not None:
            self.triggers.before_update(conn, table, old, new)

        if new.get("id") != row_id:
            raise ConstraintViolation(f"{table}.id is immutable", constraint=f"{table}.id")

        written = [c for c in new if c in changes or new[c] != old.get(c)]
        if written:
            assignments = ", ".join(f"{c} = ?" for c in written)
            try:
                conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?",
                    [new[c] for c in written] + [row_id],
                )
            except sqlite3.IntegrityError as e:
                raise ConstraintViolation(
                    f"Update of {table} rejected: {e}", constraint=_constraint_name(e)
                ) from e

        stored = self.fetch(conn, table, row_id) or new

        if self.triggers is not None:
            self.triggers.after_update(conn, table, old, stored)

        return stored

    def delete(self, conn: sqlite3.Connection, table: str, row_id: str) -> bool:
        """Delete a row. Dependent rows go with it through foreign-key cascades.

        Returns:
            True if deleted, False if not found
        """
        get_table(table)
        try:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(
                f"Delete from {table} rejected: {e}", constraint=_constraint_name(e)
            ) from e
        return cursor.rowcount > 0

    def count(self, conn: sqlite3.Connection, table: str, where: Mapping[str, Any] | None = None) -> int:
        where = where or {}
        self._check_columns(table, where)
        query = f"SELECT COUNT(*) FROM {table}"
        if where:
            query += " WHERE " + " AND ".join(f"{column} = ?" for column in where)
        return conn.execute(query, list(where.values())).fetchone()[0]

    def get_stats(self) -> dict[str, int]:
        """Row counts per declared table that exists in the database."""
        stats: dict[str, int] = {}
        with self.transaction(immediate=False) as conn:
            existing = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            for table in TABLES:
                if table.name in existing:
                    stats[table.name] = self.count(conn, table.name)
        return stats
