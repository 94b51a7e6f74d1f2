"""
Gloworld Server - ownership-scoped project storage.

This package stores per-user projects and the resources each project owns
(external service connections, generated files, AI job records) and
guarantees that every caller only reads and mutates rows it owns through
the project they belong to.

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────┐
    │   Caller    │────▶│ GuardedStore │────▶│ PolicyEvaluator  │
    │ (identity)  │     │              │     │ + Ownership      │
    └─────────────┘     └──────┬───────┘     └──────────────────┘
                               │
                               ▼
                        ┌──────────────┐     ┌──────────────────┐
                        │ EntityStore  │────▶│ TriggerDispatcher│
                        │   (SQLite)   │     │ (same txn)       │
                        └──────────────┘     └──────────────────┘
                               ▲
                               │
                        ┌──────────────┐
                        │ Bootstrap    │  tables, indexes, functions,
                        │ Applier      │  policies, triggers, seeds
                        └──────────────┘

Invariants:
    - Every read and write by a non-privileged caller passes the PolicyEvaluator
    - Trigger effects commit or roll back with the mutation that fired them
    - Bootstrap can be applied any number of times with the same end state
    - Privilege is an explicit Caller capability, never ambient

How to change safely:
    - New tables need a TableDef, policies and a bootstrap step
    - New triggers need their function installed before the trigger step
    - Never bypass GuardedStore for caller-facing access
"""

from ._version import __version__

__all__ = ["__version__"]
