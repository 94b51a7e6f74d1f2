"""
Identity boundary events.

The identity provider owns principals. Gloworld learns about them through
two events, both delivered at least once:

    principal_created  register the principal; the on_principal_created
                       trigger creates its profile in the same transaction
    principal_deleted  remove the principal; foreign-key cascades remove its
                       profile, its projects and everything they own

Both run elevated. Neither is reachable from caller input.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..policy.caller import Caller
from ..policy.evaluator import PolicyEvaluator
from ..policy.rules import Operation
from ..store.entity_store import EntityStore

logger = logging.getLogger(__name__)


class IdentityEvents:
    """Applies identity provider events to the store."""

    def __init__(self, store: EntityStore, evaluator: PolicyEvaluator) -> None:
        self.store = store
        self.evaluator = evaluator

    async def principal_created(
        self,
        principal_id: str,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Register a principal.

        Duplicate deliveries are ignored and do not fire the profile trigger
        again.

        Args:
            principal_id: Opaque id issued by the identity provider
            email: Email address, if known
            metadata: Identity metadata (username, display_name, avatar_url)

        Returns:
            True if the principal was new

        Raises:
            TriggerFailure: If the profile could not be created (for example
                a username collision); the principal is not registered
        """
        if not principal_id:
            raise ValueError("principal_id cannot be empty")

        caller = Caller.elevated("identity.principal_created", principal_id)
        values = {
            "id": principal_id,
            "email": email,
            "metadata_json": json.dumps(metadata or {}, sort_keys=True),
            "created_at": self.store.now(),
        }
        with self.store.transaction() as conn:
            self.evaluator.authorize(conn, caller, "principals", Operation.CREATE, proposed=values)
            inserted = self.store.insert_or_ignore(conn, "principals", values)

        if inserted:
            logger.info("Principal registered", extra={"principal_id": principal_id})
        else:
            logger.debug("Duplicate principal_created ignored", extra={"principal_id": principal_id})
        return inserted

    async def principal_deleted(self, principal_id: str) -> bool:
        """Remove a principal and everything it owns.

        Returns:
            True if the principal existed
        """
        caller = Caller.elevated("identity.principal_deleted", principal_id)
        with self.store.transaction() as conn:
            existing = self.store.fetch(conn, "principals", principal_id)
            if existing is None:
                return False
            self.evaluator.authorize(conn, caller, "principals", Operation.DELETE, existing=existing)
            deleted = self.store.delete(conn, "principals", principal_id)

        logger.info("Principal deleted", extra={"principal_id": principal_id})
        return deleted
