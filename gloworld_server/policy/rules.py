"""
Policy rule definitions.

A PolicyRule grants one operation on one table to callers for whom every
listed predicate holds. Which row the predicates see depends on the
operation:

    read, delete  -> the existing row
    create        -> the proposed row
    update        -> the existing row and the proposed row (both must pass)

Tables or operations without an installed rule are denied to every
non-privileged caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..schema.types import definition_digest


class Operation(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def checks_existing(self) -> bool:
        return self in (Operation.READ, Operation.UPDATE, Operation.DELETE)

    @property
    def checks_proposed(self) -> bool:
        return self in (Operation.CREATE, Operation.UPDATE)


@dataclass(frozen=True)
class PolicyRule:
    """A named policy.

    Attributes:
        name: Policy name (unique)
        table: Table the policy applies to
        operation: Operation granted
        predicates: Predicate routine names, all of which must hold
    """

    name: str
    table: str
    operation: Operation
    predicates: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.predicates:
            raise ValueError(f"Policy '{self.name}' has no predicates")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table,
            "operation": self.operation.value,
            "predicates": list(self.predicates),
        }

    def fingerprint(self) -> str:
        return definition_digest(self.to_dict())
