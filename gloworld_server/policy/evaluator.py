"""
Policy evaluation for Gloworld.

The PolicyEvaluator is the single chokepoint for authorization. For a
(caller, table, operation) it loads the installed policies from the
catalog, resolves their predicate routines, and evaluates them against the
existing and/or proposed row.

Invariants:
    - Deny by default: no installed policy means no access
    - Predicates are conjunctive; one false predicate denies the request
    - A policy naming an unregistered predicate denies
    - Privileged callers skip per-row checks
    - Evaluation reads state inside the caller's transaction

How to change safely:
    - Add access by installing new policies, not by special-casing here
    - Keep denial messages opaque (Unauthorized)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import Unauthorized
from ..schema.catalog import Catalog
from ..schema.routines import RoutineKind, RoutineRegistry
from .caller import Caller
from .ownership import OwnershipResolver
from .predicates import PolicyContext
from .rules import Operation

logger = logging.getLogger(__name__)


class PolicyEvaluator:
    """Evaluates installed policies.

    Example:
        >>> evaluator = PolicyEvaluator(Catalog(), routines)
        >>> evaluator.authorize(conn, caller, "projects", Operation.UPDATE,
        ...                     existing=row, proposed=new_row)
    """

    def __init__(
        self,
        catalog: Catalog,
        routines: RoutineRegistry,
        resolver: OwnershipResolver | None = None,
    ) -> None:
        self.catalog = catalog
        self.routines = routines
        self.resolver = resolver or OwnershipResolver()

    def is_allowed(
        self,
        conn: sqlite3.Connection,
        caller: Caller,
        table: str,
        operation: Operation,
        existing: Mapping[str, Any] | None = None,
        proposed: Mapping[str, Any] | None = None,
    ) -> bool:
        """Check whether the caller may perform an operation.

        Args:
            conn: Connection of the running transaction
            caller: Acting caller
            table: Table being accessed
            operation: Requested operation
            existing: Current row (read, update, delete)
            proposed: Row as it would be stored (create, update)

        Returns:
            True if every predicate of every applicable policy holds
        """
        if caller.privileged:
            return True

        policies = self.catalog.policies_for(conn, table, operation.value)
        if not policies:
            logger.debug(
                "No policy installed, denying",
                extra={"table": table, "operation": operation.value},
            )
            return False

        rows: list[Mapping[str, Any] | None] = []
        if operation.checks_existing:
            rows.append(existing)
        if operation.checks_proposed:
            rows.append(proposed)
        if any(row is None for row in rows):
            return False

        context = PolicyContext(
            conn=conn,
            caller=caller,
            table=table,
            operation=operation.value,
            resolver=self.resolver,
        )

        for policy in policies:
            for name in policy.definition.get("predicates", []):
                routine = self.routines.get(name, RoutineKind.PREDICATE)
                if routine is None:
                    logger.warning(
                        f"Policy {policy.name} references unknown predicate {name}, denying"
                    )
                    return False
                for row in rows:
                    if not routine.handler(context, row):
                        return False

        return True

    def authorize(
        self,
        conn: sqlite3.Connection,
        caller: Caller,
        table: str,
        operation: Operation,
        existing: Mapping[str, Any] | None = None,
        proposed: Mapping[str, Any] | None = None,
    ) -> None:
        """Check an operation and raise if denied.

        Raises:
            Unauthorized: If the operation is not allowed
        """
        if not self.is_allowed(conn, caller, table, operation, existing, proposed):
            row = existing if existing is not None else proposed
            entity_id = row.get("id") if row is not None else None
            logger.info(
                "Access denied",
                extra={
                    "caller": str(caller),
                    "table": table,
                    "operation": operation.value,
                    "entity_id": entity_id,
                },
            )
            raise Unauthorized(table, entity_id)

    def filter_visible(
        self,
        conn: sqlite3.Connection,
        caller: Caller,
        table: str,
        rows: Iterable[Mapping[str, Any]],
    ) -> list[Mapping[str, Any]]:
        """Keep only the rows the caller may read."""
        return [
            row
            for row in rows
            if self.is_allowed(conn, caller, table, Operation.READ, existing=row)
        ]
