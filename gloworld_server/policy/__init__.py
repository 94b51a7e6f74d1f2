"""
Policy module for Gloworld - ownership-based access control.

This module handles:
- Caller identity and explicit privilege
- Ownership resolution along principal -> project -> resource
- Policy rules and their evaluation

Invariants:
    - Deny by default
    - Predicates of a policy are conjunctive
    - Privilege is granted only through Caller.elevated()

How to change safely:
    - Grant access by declaring policies, never by bypassing the evaluator
    - Test both the owner and a foreign principal for every new policy
"""

from .caller import Caller
from .evaluator import PolicyEvaluator
from .ownership import OwnershipResolver
from .predicates import PolicyContext
from .rules import Operation, PolicyRule

__all__ = [
    "Caller",
    "PolicyEvaluator",
    "OwnershipResolver",
    "PolicyContext",
    "Operation",
    "PolicyRule",
]
