"""
Connection verification.

verify_connection marks the caller's connection active once the external
service has been reached. It bypasses the policy evaluator: matching the
connection by id AND user_id in the lookup is its authorization, and the
project leg of ownership is not re-derived here.

Invariants:
    - Lookup and write happen in one transaction
    - A missing id and another principal's connection both return False
      with no side effect
    - last_verified_at and updated_at both take the transaction clock
"""

from __future__ import annotations

import logging

from ..policy.caller import Caller
from ..schema.types import ConnectionStatus
from ..store.entity_store import EntityStore

logger = logging.getLogger(__name__)


class VerificationAction:
    """Marks connections as verified.

    Example:
        >>> action = VerificationAction(store)
        >>> await action.verify_connection(Caller.user("u1"), connection_id)
        True
    """

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def verify_connection(self, caller: Caller, connection_id: str) -> bool:
        """Activate the caller's connection.

        Args:
            caller: Caller requesting verification
            connection_id: Connection to activate

        Returns:
            True if the caller's connection was found and activated
        """
        if caller.principal_id is None:
            return False

        with self.store.transaction() as conn:
            cursor = conn.execute(
                "SELECT * FROM connections WHERE id = ? AND user_id = ?",
                (connection_id, caller.principal_id),
            )
            row = cursor.fetchone()
            if row is None:
                logger.debug(
                    "Verification target not found",
                    extra={"connection_id": connection_id, "caller": str(caller)},
                )
                return False

            changes = {
                "status": ConnectionStatus.ACTIVE.value,
                "last_verified_at": self.store.now(),
            }
            self.store.update(conn, "connections", connection_id, changes)

        logger.info(
            "Connection verified",
            extra={"connection_id": connection_id, "principal_id": caller.principal_id},
        )
        return True
