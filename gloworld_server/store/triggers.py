"""
Consistency triggers for Gloworld.

Triggers are explicit hooks on the store's write path. The dispatcher
looks up the triggers installed for (table, event) in the catalog and calls
their functions with the connection of the transaction that is running the
mutation, so trigger effects are visible to that transaction's later reads
and roll back with it.

Trigger functions defined here:
- stamp_updated_at: BEFORE UPDATE, sets updated_at to the current time
- handle_new_principal: AFTER INSERT on principals, creates the profile
- enforce_ai_job_lifecycle: BEFORE UPDATE on ai_jobs, enforces monotonic
  status transitions and sets finished_at on the terminal transition

Invariants:
    - Trigger functions run with elevated privilege (no policy checks)
    - A failing trigger aborts the originating mutation
    - Profile creation is insert-or-ignore, safe under duplicate delivery
    - Triggers fire in name order

How to change safely:
    - New trigger functions must be registered as routines and installed by
      bootstrap before a trigger rule can reference them
    - Keep trigger functions free of network or filesystem side effects
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import ConstraintViolation, TriggerFailure
from ..schema.catalog import Catalog
from ..schema.routines import RoutineKind, RoutineRegistry
from ..schema.types import AiJobStatus, definition_digest

logger = logging.getLogger(__name__)


class TriggerEvent(str, Enum):
    BEFORE_INSERT = "before_insert"
    AFTER_INSERT = "after_insert"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"


@dataclass(frozen=True)
class TriggerRule:
    """A named trigger binding a function to a table event.

    Attributes:
        name: Trigger name (unique)
        table: Table whose writes fire the trigger
        event: When the trigger fires
        function: Name of the trigger routine to call
    """

    name: str
    table: str
    event: TriggerEvent
    function: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table,
            "event": self.event.value,
            "function": self.function,
        }

    def fingerprint(self) -> str:
        return definition_digest(self.to_dict())


@dataclass
class TriggerContext:
    """What a trigger function receives besides the rows.

    Attributes:
        conn: Connection of the running transaction
        table: Table being written
        event: Event that fired
        trigger: Name of the firing trigger
        now: Transaction clock reading (Unix ms)
    """

    conn: sqlite3.Connection
    table: str
    event: TriggerEvent
    trigger: str
    now: int


class TriggerDispatcher:
    """Fires installed triggers around store writes.

    Example:
        >>> dispatcher = TriggerDispatcher(Catalog(), routines, clock)
        >>> store = EntityStore(path, triggers=dispatcher)
    """

    def __init__(
        self,
        catalog: Catalog,
        routines: RoutineRegistry,
        clock: Callable[[], int],
    ) -> None:
        self.catalog = catalog
        self.routines = routines
        self.clock = clock

    def before_insert(self, conn: sqlite3.Connection, table: str, new: dict[str, Any]) -> None:
        self._fire(conn, table, TriggerEvent.BEFORE_INSERT, None, new)

    def after_insert(self, conn: sqlite3.Connection, table: str, new: dict[str, Any]) -> None:
        self._fire(conn, table, TriggerEvent.AFTER_INSERT, None, new)

    def before_update(
        self,
        conn: sqlite3.Connection,
        table: str,
        old: dict[str, Any],
        new: dict[str, Any],
    ) -> None:
        self._fire(conn, table, TriggerEvent.BEFORE_UPDATE, old, new)

    def after_update(
        self,
        conn: sqlite3.Connection,
        table: str,
        old: dict[str, Any],
        new: dict[str, Any],
    ) -> None:
        self._fire(conn, table, TriggerEvent.AFTER_UPDATE, old, new)

    def _fire(
        self,
        conn: sqlite3.Connection,
        table: str,
        event: TriggerEvent,
        old: dict[str, Any] | None,
        new: dict[str, Any],
    ) -> None:
        for entry in self.catalog.triggers_for(conn, table, event.value):
            function_name = entry.definition.get("function", "")
            routine = self.routines.get(function_name, RoutineKind.TRIGGER)
            if routine is None:
                raise TriggerFailure(
                    entry.name, LookupError(f"trigger function '{function_name}' is not registered")
                )

            context = TriggerContext(
                conn=conn,
                table=table,
                event=event,
                trigger=entry.name,
                now=self.clock(),
            )
            try:
                routine.handler(context, old, new)
            except (TriggerFailure, ConstraintViolation):
                raise
            except Exception as e:
                logger.error(
                    "Trigger failed",
                    extra={"trigger": entry.name, "table": table, "event": event.value},
                    exc_info=True,
                )
                raise TriggerFailure(entry.name, e) from e


def stamp_updated_at(
    context: TriggerContext, old: dict[str, Any] | None, new: dict[str, Any]
) -> None:
    """Set updated_at to the current time, whatever the client supplied."""
    new["updated_at"] = context.now


def handle_new_principal(
    context: TriggerContext, old: dict[str, Any] | None, new: dict[str, Any]
) -> None:
    """Create the profile of a newly registered principal.

    Profile fields are copied from the principal's identity metadata when
    present. An existing profile is left untouched. A username collision is
    not ignored: it fails the trigger and the principal registration with it.
    """
    metadata = json.loads(new.get("metadata_json") or "{}")
    cursor = context.conn.execute(
        """
        INSERT INTO profiles (id, username, display_name, avatar_url, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO NOTHING
        """,
        (
            new["id"],
            metadata.get("username"),
            metadata.get("display_name") or metadata.get("full_name"),
            metadata.get("avatar_url"),
            context.now,
            context.now,
        ),
    )
    if cursor.rowcount:
        logger.info("Created profile for new principal", extra={"principal_id": new["id"]})


def enforce_ai_job_lifecycle(
    context: TriggerContext, old: dict[str, Any] | None, new: dict[str, Any]
) -> None:
    """Reject non-monotonic status changes and stamp finished_at.

    Jobs move queued -> running -> succeeded | failed. Terminal jobs are
    immutable. finished_at is owned by this trigger.
    """
    if old is None:
        raise ValueError(f"{context.trigger} only runs on updates of existing jobs")
    current = AiJobStatus(old["status"])
    try:
        target = AiJobStatus(new["status"])
    except ValueError:
        raise ConstraintViolation(
            f"Invalid AI job status '{new['status']}'", constraint="ai_jobs.status"
        ) from None

    if current.is_terminal:
        raise ConstraintViolation(
            f"AI job {old['id']} is {current.value} and can no longer change",
            constraint="ai_jobs.lifecycle",
        )
    if not current.can_transition_to(target):
        raise ConstraintViolation(
            f"AI job cannot move from {current.value} to {target.value}",
            constraint="ai_jobs.lifecycle",
        )

    new["finished_at"] = context.now if target.is_terminal else None
