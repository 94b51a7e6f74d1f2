"""
Table and index declarations for Gloworld.

Ownership chain encoded by the foreign keys:
    principals ─┬─▶ profiles
                └─▶ projects ─┬─▶ connections
                              ├─▶ generated_files
                              └─▶ ai_jobs
    storage_buckets ─▶ storage_objects

Deleting a principal cascades to its profile, its projects and everything
the projects own. Creator references (created_by, user_id on ai_jobs,
owner_id on storage_objects) are cleared instead of cascading.

TABLES is ordered so that every referenced table precedes its dependents.
"""

from __future__ import annotations

from .types import AiJobStatus, ColumnDef, ConnectionStatus, FileKind, IndexDef, TableDef


def _id() -> ColumnDef:
    return ColumnDef("id", "TEXT", nullable=False, primary_key=True)


def _created_at() -> ColumnDef:
    return ColumnDef("created_at", "INTEGER", nullable=False)


def _updated_at() -> ColumnDef:
    return ColumnDef("updated_at", "INTEGER", nullable=False)


PRINCIPALS = TableDef(
    name="principals",
    description="Principals known to the identity provider",
    columns=(
        _id(),
        ColumnDef("email", "TEXT"),
        ColumnDef("metadata_json", "TEXT", nullable=False, default="'{}'"),
        _created_at(),
    ),
)

PROFILES = TableDef(
    name="profiles",
    description="One profile per principal, created by the profile bootstrap trigger",
    columns=(
        ColumnDef(
            "id",
            "TEXT",
            nullable=False,
            primary_key=True,
            references="principals(id)",
            on_delete="CASCADE",
        ),
        ColumnDef("username", "TEXT", unique=True),
        ColumnDef("display_name", "TEXT"),
        ColumnDef("avatar_url", "TEXT"),
        _created_at(),
        _updated_at(),
    ),
)

PROJECTS = TableDef(
    name="projects",
    description="Projects owned by exactly one principal",
    columns=(
        _id(),
        ColumnDef(
            "owner_id", "TEXT", nullable=False, references="principals(id)", on_delete="CASCADE"
        ),
        ColumnDef("name", "TEXT", nullable=False),
        ColumnDef("description", "TEXT"),
        _created_at(),
        _updated_at(),
    ),
)

CONNECTIONS = TableDef(
    name="connections",
    description="External service credentials scoped to a (user, project) pair",
    columns=(
        _id(),
        ColumnDef(
            "user_id", "TEXT", nullable=False, references="principals(id)", on_delete="CASCADE"
        ),
        ColumnDef(
            "project_id", "TEXT", nullable=False, references="projects(id)", on_delete="CASCADE"
        ),
        ColumnDef("endpoint_url", "TEXT", nullable=False),
        ColumnDef("public_key", "TEXT", nullable=False),
        ColumnDef("encrypted_secret", "TEXT"),
        ColumnDef(
            "status",
            "TEXT",
            nullable=False,
            default=f"'{ConnectionStatus.INACTIVE.value}'",
            choices=tuple(s.value for s in ConnectionStatus),
        ),
        ColumnDef("last_verified_at", "INTEGER"),
        _created_at(),
        _updated_at(),
    ),
    unique_together=(("user_id", "project_id"),),
)

GENERATED_FILES = TableDef(
    name="generated_files",
    description="Metadata for artifacts generated for a project",
    columns=(
        _id(),
        ColumnDef(
            "project_id", "TEXT", nullable=False, references="projects(id)", on_delete="CASCADE"
        ),
        ColumnDef("path", "TEXT", nullable=False),
        ColumnDef("kind", "TEXT", nullable=False, choices=tuple(k.value for k in FileKind)),
        ColumnDef("size_bytes", "INTEGER", nullable=False, default="0"),
        ColumnDef("storage_key", "TEXT"),
        ColumnDef("created_by", "TEXT", references="principals(id)", on_delete="SET NULL"),
        _created_at(),
    ),
)

AI_JOBS = TableDef(
    name="ai_jobs",
    description="Observability records for AI invocations",
    columns=(
        _id(),
        ColumnDef(
            "project_id", "TEXT", nullable=False, references="projects(id)", on_delete="CASCADE"
        ),
        ColumnDef("user_id", "TEXT", references="principals(id)", on_delete="SET NULL"),
        ColumnDef("provider", "TEXT", nullable=False),
        ColumnDef("model", "TEXT", nullable=False),
        ColumnDef(
            "status",
            "TEXT",
            nullable=False,
            default=f"'{AiJobStatus.QUEUED.value}'",
            choices=tuple(s.value for s in AiJobStatus),
        ),
        ColumnDef("input_tokens", "INTEGER", nullable=False, default="0"),
        ColumnDef("output_tokens", "INTEGER", nullable=False, default="0"),
        ColumnDef("cost_usd", "REAL", nullable=False, default="0"),
        ColumnDef("request_id", "TEXT"),
        ColumnDef("metadata_json", "TEXT", nullable=False, default="'{}'"),
        _created_at(),
        ColumnDef("finished_at", "INTEGER"),
    ),
)

STORAGE_BUCKETS = TableDef(
    name="storage_buckets",
    description="Object storage buckets; public buckets are readable by anyone",
    columns=(
        _id(),
        ColumnDef("name", "TEXT", nullable=False),
        ColumnDef("public", "INTEGER", nullable=False, default="0"),
        _created_at(),
    ),
)

STORAGE_OBJECTS = TableDef(
    name="storage_objects",
    description="Pointers to blobs held by the object storage service",
    columns=(
        _id(),
        ColumnDef(
            "bucket_id",
            "TEXT",
            nullable=False,
            references="storage_buckets(id)",
            on_delete="CASCADE",
        ),
        ColumnDef("name", "TEXT", nullable=False),
        ColumnDef("owner_id", "TEXT", references="principals(id)", on_delete="SET NULL"),
        ColumnDef("size_bytes", "INTEGER", nullable=False, default="0"),
        ColumnDef("content_type", "TEXT"),
        _created_at(),
        _updated_at(),
    ),
    unique_together=(("bucket_id", "name"),),
)

TABLES: tuple[TableDef, ...] = (
    PRINCIPALS,
    PROFILES,
    PROJECTS,
    CONNECTIONS,
    GENERATED_FILES,
    AI_JOBS,
    STORAGE_BUCKETS,
    STORAGE_OBJECTS,
)

INDEXES: tuple[IndexDef, ...] = (
    IndexDef("idx_projects_owner", "projects", ("owner_id",)),
    IndexDef("idx_connections_project", "connections", ("project_id",)),
    IndexDef("idx_connections_user", "connections", ("user_id",)),
    IndexDef("idx_generated_files_project", "generated_files", ("project_id", "created_at")),
    IndexDef("idx_ai_jobs_project", "ai_jobs", ("project_id", "created_at")),
    IndexDef("idx_ai_jobs_status", "ai_jobs", ("status",)),
    IndexDef("idx_storage_objects_owner", "storage_objects", ("owner_id",)),
)

_TABLES_BY_NAME = {t.name: t for t in TABLES}


def get_table(name: str) -> TableDef:
    """Look up a declared table.

    Raises:
        KeyError: If the table is not declared
    """
    return _TABLES_BY_NAME[name]
