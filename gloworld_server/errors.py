"""
Error types for Gloworld Server.

This module defines every exception raised across the store, policy and
bootstrap layers:
- GloworldError: Base exception
- Unauthorized: Ownership check failed (reported as an opaque not-found)
- ConstraintViolation: Uniqueness, enum, foreign-key or input validation failure
- TriggerFailure: A consistency trigger failed; the mutation was rolled back
- BootstrapConflict: An existing definition has the same name but a different shape
- BootstrapOrderError: A bootstrap step ran before its dependencies

Invariants:
    - All errors inherit from GloworldError
    - Unauthorized never reveals whether the target exists
    - Nothing raising these errors has partially applied
"""

from __future__ import annotations

from typing import Any


class GloworldError(Exception):
    """Base exception for all Gloworld errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GLOWORLD_ERROR"
        self.details = details or {}


class Unauthorized(GloworldError):
    """Caller does not own the target, or the target does not exist.

    The two cases share one message and code so that non-owners cannot
    discover the existence of other principals' rows.
    """

    def __init__(self, entity: str, entity_id: str | None = None) -> None:
        super().__init__(
            f"{entity} not found",
            code="NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolation(GloworldError):
    """A store constraint or input validation rule rejected the write.

    Raised when:
    - A unique constraint is violated (username, one connection per project)
    - An enum value is outside its closed set
    - A foreign key points at a missing row
    - An input payload has unknown or invalid fields
    - An AI job status transition is not allowed
    """

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="CONSTRAINT_VIOLATION",
            details={"constraint": constraint, "errors": errors or []},
        )
        self.constraint = constraint
        self.errors = errors or []


class TriggerFailure(GloworldError):
    """A consistency trigger failed and aborted its originating mutation."""

    def __init__(self, trigger: str, cause: BaseException | None = None) -> None:
        message = f"Trigger '{trigger}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message,
            code="TRIGGER_FAILURE",
            details={"trigger": trigger},
        )
        self.trigger = trigger
        self.cause = cause


class BootstrapConflict(GloworldError):
    """An installed object has the declared name but an incompatible shape.

    Requires operator intervention. The applier never drops data to resolve it.

    Attributes:
        kind: Object kind (table, index, ...)
        name: Object name
        expected: Declared shape
        actual: Shape found in the target
    """

    def __init__(
        self,
        kind: str,
        name: str,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        super().__init__(
            f"Existing {kind} '{name}' does not match its declared definition",
            code="BOOTSTRAP_CONFLICT",
            details={"kind": kind, "name": name, "expected": expected, "actual": actual},
        )
        self.kind = kind
        self.name = name
        self.expected = expected
        self.actual = actual


class BootstrapOrderError(GloworldError):
    """A bootstrap step depends on an object that is not installed yet."""

    def __init__(self, step: str, missing: str) -> None:
        super().__init__(
            f"Step '{step}' requires {missing}, which is not installed",
            code="BOOTSTRAP_ORDER",
            details={"step": step, "missing": missing},
        )
        self.step = step
        self.missing = missing
