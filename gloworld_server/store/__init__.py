"""
Store module for Gloworld - SQLite persistence and consistency triggers.

This module handles:
- The entity store (connections, transactions, row helpers)
- Trigger dispatch on the write path
- Row records returned to callers

Invariants:
    - A mutation and its triggers commit or roll back together
    - Foreign keys are always enforced

How to change safely:
    - Route every write through EntityStore so triggers fire
    - Keep trigger functions side-effect free outside the database
"""

from .entity_store import Clock, EntityStore, system_clock
from .records import (
    AiJob,
    Connection,
    GeneratedFile,
    Profile,
    Project,
    StorageBucket,
    StorageObject,
)
from .triggers import TriggerContext, TriggerDispatcher, TriggerEvent, TriggerRule

__all__ = [
    "Clock",
    "EntityStore",
    "system_clock",
    "AiJob",
    "Connection",
    "GeneratedFile",
    "Profile",
    "Project",
    "StorageBucket",
    "StorageObject",
    "TriggerContext",
    "TriggerDispatcher",
    "TriggerEvent",
    "TriggerRule",
]
