"""
Access module for Gloworld - the operations callers and the identity
provider invoke.

This module handles:
- Guarded reads and writes on every owned entity
- Identity events (principal created, principal deleted)
- The connection verification action

Invariants:
    - Every operation runs in exactly one store transaction
    - Policy checks run inside that transaction
    - Elevated paths name their purpose

How to change safely:
    - Add operations to GuardedStore through its generic helpers
    - Keep elevated paths out of reach of caller input
"""

from .guarded_store import GuardedStore
from .identity import IdentityEvents
from .verification import VerificationAction

__all__ = [
    "GuardedStore",
    "IdentityEvents",
    "VerificationAction",
]
