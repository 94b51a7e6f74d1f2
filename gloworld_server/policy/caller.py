"""
Caller identity for guarded operations.

A Caller carries the principal id supplied by the identity provider. The
id is trusted as already authenticated and treated as opaque.

Privilege is a property of the Caller object, granted only through
Caller.elevated(purpose). Elevated callers skip per-row policy checks, so
they are created by the trigger dispatcher, the verification action and
operator tooling, never from request input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """The acting principal of one operation.

    Attributes:
        principal_id: Principal identifier, None for anonymous callers
        privileged: Whether per-row policy checks are skipped
        purpose: Why privilege was granted (for logs)
    """

    principal_id: str | None
    privileged: bool = False
    purpose: str | None = None

    @classmethod
    def user(cls, principal_id: str) -> Caller:
        if not principal_id:
            raise ValueError("principal_id cannot be empty")
        return cls(principal_id=principal_id)

    @classmethod
    def anonymous(cls) -> Caller:
        return cls(principal_id=None)

    @classmethod
    def elevated(cls, purpose: str, principal_id: str | None = None) -> Caller:
        """Grant privilege for one named purpose.

        Args:
            purpose: Short description recorded in logs
            principal_id: Principal on whose behalf the elevated work runs
        """
        if not purpose:
            raise ValueError("Elevated callers must state a purpose")
        logger.debug("Elevated caller created", extra={"purpose": purpose})
        return cls(principal_id=principal_id, privileged=True, purpose=purpose)

    @property
    def is_anonymous(self) -> bool:
        return self.principal_id is None and not self.privileged

    def __str__(self) -> str:
        if self.privileged:
            return f"service:{self.purpose}"
        return f"user:{self.principal_id}" if self.principal_id else "anonymous"
