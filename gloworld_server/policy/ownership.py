"""
Ownership resolution for Gloworld.

Ownership chain:
    principal ─▶ profile                      (profile.id)
    principal ─▶ project                      (project.owner_id)
    principal ─▶ project ─▶ connection        (project.owner_id and connection.user_id)
    principal ─▶ project ─▶ generated_file    (project.owner_id)
    principal ─▶ project ─▶ ai_job            (project.owner_id)

Invariants:
    - A missing or deleted project resolves to "not owned", never to an error
    - Anonymous principals own nothing
    - Nothing is cached; every call reads the current row inside the caller's
      transaction

How to change safely:
    - New project-owned tables must resolve through owns_project()
    - Test both legs of the connection rule (user and project owner)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

# Tables whose rows derive ownership from their project
PROJECT_SCOPED_TABLES = frozenset({"connections", "generated_files", "ai_jobs"})


class OwnershipResolver:
    """Decides whether a principal owns an entity.

    Thread safety:
        This class is stateless and thread-safe.

    Example:
        >>> resolver = OwnershipResolver()
        >>> resolver.owns(conn, "user-1", "projects", {"owner_id": "user-1"})
        True
    """

    def project_owner(self, conn: sqlite3.Connection, project_id: str | None) -> str | None:
        """Current owner of a project, or None if it does not exist."""
        if not project_id:
            return None
        cursor = conn.execute("SELECT owner_id FROM projects WHERE id = ?", (project_id,))
        row = cursor.fetchone()
        return row[0] if row else None

    def owns_project(
        self, conn: sqlite3.Connection, principal_id: str | None, project_id: str | None
    ) -> bool:
        """Check whether a principal owns the project with this id."""
        if principal_id is None:
            return False
        owner = self.project_owner(conn, project_id)
        return owner is not None and owner == principal_id

    def owns(
        self,
        conn: sqlite3.Connection,
        principal_id: str | None,
        table: str,
        entity: Mapping[str, Any],
    ) -> bool:
        """Check whether a principal owns an entity.

        Args:
            conn: Connection of the running transaction
            principal_id: Principal to check
            table: Table the entity belongs to
            entity: The entity's row (existing or proposed)

        Returns:
            True if an ownership chain from the principal to the entity exists
        """
        if principal_id is None:
            return False

        if table == "profiles":
            return entity.get("id") == principal_id

        if table == "projects":
            return entity.get("owner_id") == principal_id

        if table == "connections":
            # The caller must be both the named connection user and the project owner
            if entity.get("user_id") != principal_id:
                return False
            return self.owns_project(conn, principal_id, entity.get("project_id"))

        if table in PROJECT_SCOPED_TABLES:
            return self.owns_project(conn, principal_id, entity.get("project_id"))

        logger.debug(f"No ownership rule for table {table}")
        return False
