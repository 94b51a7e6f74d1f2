"""
Unit tests for schema definitions.

Tests cover:
- Column and table DDL rendering
- Fingerprint stability
- AI job status transitions
- Declared tables and indexes
"""

import pytest

from gloworld_server.schema.tables import INDEXES, TABLES, get_table
from gloworld_server.schema.types import (
    AiJobStatus,
    ColumnDef,
    IndexDef,
    TableDef,
    definition_digest,
)


class TestColumnDef:
    """Tests for ColumnDef."""

    def test_to_sql_full(self):
        """All column options render in order."""
        column = ColumnDef(
            "project_id",
            "TEXT",
            nullable=False,
            references="projects(id)",
            on_delete="CASCADE",
        )
        assert column.to_sql() == (
            "project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE"
        )

    def test_choices_render_check(self):
        """Closed enums become CHECK constraints."""
        column = ColumnDef("status", "TEXT", choices=("a", "b"))
        assert "CHECK (status IN ('a', 'b'))" in column.to_sql()

    def test_shape_matches_table_info(self):
        """Shape uses table_info's (name, type, notnull, pk)."""
        column = ColumnDef("id", "TEXT", nullable=False, primary_key=True)
        assert column.shape() == ("id", "TEXT", True, True)

    def test_unsupported_type(self):
        """Only TEXT, INTEGER and REAL are allowed."""
        with pytest.raises(ValueError, match="Unsupported sql_type"):
            ColumnDef("x", "BLOB")

    def test_on_delete_requires_reference(self):
        """on_delete without references is rejected."""
        with pytest.raises(ValueError, match="on_delete"):
            ColumnDef("x", "TEXT", on_delete="CASCADE")


class TestTableDef:
    """Tests for TableDef."""

    def test_ddl_is_idempotent(self):
        """Rendered DDL can be executed repeatedly."""
        table = TableDef("things", (ColumnDef("id", "TEXT", nullable=False, primary_key=True),))
        assert table.to_ddl().startswith("CREATE TABLE IF NOT EXISTS things (")

    def test_unique_together_rendered(self):
        """Multi-column unique constraints are rendered."""
        ddl = get_table("connections").to_ddl()
        assert "UNIQUE (user_id, project_id)" in ddl

    def test_shape_includes_constraints(self):
        """Shape carries foreign keys, unique constraints and enum checks."""
        shape = get_table("connections").shape()
        assert ["id", "TEXT", True, True] in shape["columns"]
        assert shape["foreign_keys"] == [
            ["project_id", "projects", "id", "CASCADE"],
            ["user_id", "principals", "id", "CASCADE"],
        ]
        assert shape["unique"] == [["user_id", "project_id"]]
        assert shape["checks"] == [
            "CHECK(status IN('active','inactive','error'))"
        ]

    def test_duplicate_columns_rejected(self):
        """Column names must be unique."""
        with pytest.raises(ValueError, match="duplicate"):
            TableDef("t", (ColumnDef("a", "TEXT"), ColumnDef("a", "TEXT")))

    def test_unique_together_unknown_column(self):
        """Unique constraints must use declared columns."""
        with pytest.raises(ValueError, match="unknown columns"):
            TableDef("t", (ColumnDef("a", "TEXT"),), unique_together=(("a", "b"),))

    def test_fingerprint_changes_with_shape(self):
        """Adding a column changes the fingerprint."""
        base = TableDef("t", (ColumnDef("a", "TEXT"),))
        wider = TableDef("t", (ColumnDef("a", "TEXT"), ColumnDef("b", "TEXT")))
        assert base.fingerprint() != wider.fingerprint()
        assert base.fingerprint() == TableDef("t", (ColumnDef("a", "TEXT"),)).fingerprint()

    def test_description_not_part_of_fingerprint(self):
        """Descriptions are documentation only."""
        a = TableDef("t", (ColumnDef("a", "TEXT"),), description="one")
        b = TableDef("t", (ColumnDef("a", "TEXT"),), description="two")
        assert a.fingerprint() == b.fingerprint()


class TestIndexDef:
    """Tests for IndexDef."""

    def test_ddl(self):
        """Index DDL is idempotent and names its columns."""
        index = IndexDef("idx_x", "things", ("a", "b"), unique=True)
        assert index.to_ddl() == "CREATE UNIQUE INDEX IF NOT EXISTS idx_x ON things(a, b)"

    def test_no_columns(self):
        """Indexes need at least one column."""
        with pytest.raises(ValueError):
            IndexDef("idx_x", "things", ())


class TestAiJobStatus:
    """Tests for the AI job lifecycle."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (AiJobStatus.QUEUED, AiJobStatus.RUNNING),
            (AiJobStatus.RUNNING, AiJobStatus.SUCCEEDED),
            (AiJobStatus.RUNNING, AiJobStatus.FAILED),
            (AiJobStatus.QUEUED, AiJobStatus.QUEUED),
            (AiJobStatus.RUNNING, AiJobStatus.RUNNING),
        ],
    )
    def test_allowed(self, current, target):
        """Forward moves and same-status updates are allowed."""
        assert current.can_transition_to(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (AiJobStatus.RUNNING, AiJobStatus.QUEUED),
            (AiJobStatus.QUEUED, AiJobStatus.SUCCEEDED),
            (AiJobStatus.SUCCEEDED, AiJobStatus.FAILED),
            (AiJobStatus.FAILED, AiJobStatus.FAILED),
        ],
    )
    def test_rejected(self, current, target):
        """Backward moves, skips and any change to a terminal job are rejected."""
        assert not current.can_transition_to(target)


class TestDeclaredTables:
    """Tests for the declared table set."""

    def test_parents_precede_children(self):
        """Every referenced table is declared earlier."""
        seen = set()
        for table in TABLES:
            for column in table.columns:
                if column.references:
                    assert column.references.split("(")[0] in seen | {table.name}
            seen.add(table.name)

    def test_indexes_use_declared_columns(self):
        """Indexes only name columns their table declares."""
        for index in INDEXES:
            columns = get_table(index.table).column_names
            assert set(index.columns) <= set(columns)

    def test_unknown_table(self):
        """Looking up an undeclared table raises KeyError."""
        with pytest.raises(KeyError):
            get_table("nodes")

    def test_digest_is_order_independent(self):
        """Digests are computed over sorted keys."""
        assert definition_digest({"a": 1, "b": 2}) == definition_digest({"b": 2, "a": 1})
