"""
Policy predicates.

Each predicate takes a PolicyContext and one row (the existing row or the
proposed row, depending on the operation) and returns True to allow.
Predicates are registered as routines by name and referenced by installed
policies.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .caller import Caller
from .ownership import OwnershipResolver

# Column naming the creating principal, per table
CREATOR_COLUMNS = {
    "generated_files": "created_by",
    "ai_jobs": "user_id",
    "storage_objects": "owner_id",
}


@dataclass
class PolicyContext:
    """Inputs available to a predicate besides the row.

    Attributes:
        conn: Connection of the running transaction
        caller: Acting caller
        table: Table being accessed
        operation: read, create, update or delete
        resolver: Ownership resolver
    """

    conn: sqlite3.Connection
    caller: Caller
    table: str
    operation: str
    resolver: OwnershipResolver

    @property
    def principal_id(self) -> str | None:
        return self.caller.principal_id


def owns_row(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """The caller owns the row through the ownership chain."""
    return context.resolver.owns(context.conn, context.principal_id, context.table, row)


def owns_parent_project(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """The caller owns the project the row belongs to."""
    return context.resolver.owns_project(context.conn, context.principal_id, row.get("project_id"))


def is_connection_user(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """The caller is the principal named on the connection."""
    return context.principal_id is not None and row.get("user_id") == context.principal_id


def creator_is_caller(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """A declared creator, if any, is the caller."""
    column = CREATOR_COLUMNS.get(context.table)
    if column is None:
        return False
    declared = row.get(column)
    return declared is None or declared == context.principal_id


def is_public_bucket(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """The row is a public bucket."""
    return bool(row.get("public"))


def in_public_bucket(context: PolicyContext, row: Mapping[str, Any]) -> bool:
    """The row is an object stored in a public bucket."""
    cursor = context.conn.execute(
        "SELECT public FROM storage_buckets WHERE id = ?", (row.get("bucket_id"),)
    )
    bucket = cursor.fetchone()
    return bucket is not None and bool(bucket[0])
