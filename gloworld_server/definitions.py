"""
Declared routines, policies and triggers for Gloworld.

This is the single place where the access model is written down. The
bootstrap plan installs everything declared here; the policy evaluator and
trigger dispatcher only ever enforce what was installed.

Access model:
    profiles         read, update          owner only (id == caller)
    projects         read, create, update, delete
                                           owner only (owner_id == caller)
    connections      read, create, update, delete
                                           caller is the connection user
                                           AND owns the parent project
    generated_files  read, create, delete  owner of the parent project;
                                           created_by, if set, is the caller
    ai_jobs          read, create, update  owner of the parent project;
                                           user_id, if set, is the caller
    storage_buckets  read                  public buckets, anyone
    storage_objects  read                  objects in public buckets, anyone

Everything not listed (deleting a profile, updating a generated file,
deleting an AI job, writing storage) has no policy and is denied to
non-privileged callers.

How to change safely:
    - Adding a predicate to a policy changes its fingerprint; the next
      bootstrap reinstalls it
    - Bump a routine's version when its behavior changes
"""

from __future__ import annotations

from .policy import predicates
from .policy.rules import Operation, PolicyRule
from .schema.routines import RoutineDef, RoutineKind, RoutineRegistry
from .store import triggers
from .store.triggers import TriggerEvent, TriggerRule

ROUTINES: tuple[RoutineDef, ...] = (
    RoutineDef(
        "owns_row",
        RoutineKind.PREDICATE,
        predicates.owns_row,
        description="Caller owns the row through the ownership chain",
    ),
    RoutineDef(
        "owns_parent_project",
        RoutineKind.PREDICATE,
        predicates.owns_parent_project,
        description="Caller owns the row's project",
    ),
    RoutineDef(
        "is_connection_user",
        RoutineKind.PREDICATE,
        predicates.is_connection_user,
        description="Caller is the connection's user",
    ),
    RoutineDef(
        "creator_is_caller",
        RoutineKind.PREDICATE,
        predicates.creator_is_caller,
        description="Declared creator, if any, is the caller",
    ),
    RoutineDef(
        "is_public_bucket",
        RoutineKind.PREDICATE,
        predicates.is_public_bucket,
        description="Bucket is publicly readable",
    ),
    RoutineDef(
        "in_public_bucket",
        RoutineKind.PREDICATE,
        predicates.in_public_bucket,
        description="Object lives in a publicly readable bucket",
    ),
    RoutineDef(
        "stamp_updated_at",
        RoutineKind.TRIGGER,
        triggers.stamp_updated_at,
        description="Set updated_at to now on every update",
    ),
    RoutineDef(
        "handle_new_principal",
        RoutineKind.TRIGGER,
        triggers.handle_new_principal,
        description="Create the profile of a new principal",
    ),
    RoutineDef(
        "enforce_ai_job_lifecycle",
        RoutineKind.TRIGGER,
        triggers.enforce_ai_job_lifecycle,
        description="Monotonic AI job status and finished_at stamping",
    ),
)


def _owner_policies(table: str, operations: tuple[Operation, ...], *names: str) -> list[PolicyRule]:
    return [
        PolicyRule(f"{table}_{op.value}", table, op, tuple(names))
        for op in operations
    ]


_ALL = (Operation.READ, Operation.CREATE, Operation.UPDATE, Operation.DELETE)

POLICIES: tuple[PolicyRule, ...] = (
    *_owner_policies("profiles", (Operation.READ, Operation.UPDATE), "owns_row"),
    *_owner_policies("projects", _ALL, "owns_row"),
    *_owner_policies("connections", _ALL, "is_connection_user", "owns_parent_project"),
    *_owner_policies(
        "generated_files", (Operation.READ, Operation.DELETE), "owns_parent_project"
    ),
    PolicyRule(
        "generated_files_create",
        "generated_files",
        Operation.CREATE,
        ("owns_parent_project", "creator_is_caller"),
    ),
    *_owner_policies("ai_jobs", (Operation.READ, Operation.UPDATE), "owns_parent_project"),
    PolicyRule(
        "ai_jobs_create",
        "ai_jobs",
        Operation.CREATE,
        ("owns_parent_project", "creator_is_caller"),
    ),
    PolicyRule("storage_buckets_public_read", "storage_buckets", Operation.READ, ("is_public_bucket",)),
    PolicyRule("storage_objects_public_read", "storage_objects", Operation.READ, ("in_public_bucket",)),
)

TRIGGERS: tuple[TriggerRule, ...] = (
    TriggerRule("on_principal_created", "principals", TriggerEvent.AFTER_INSERT, "handle_new_principal"),
    TriggerRule("profiles_stamp_updated_at", "profiles", TriggerEvent.BEFORE_UPDATE, "stamp_updated_at"),
    TriggerRule("projects_stamp_updated_at", "projects", TriggerEvent.BEFORE_UPDATE, "stamp_updated_at"),
    TriggerRule(
        "connections_stamp_updated_at", "connections", TriggerEvent.BEFORE_UPDATE, "stamp_updated_at"
    ),
    TriggerRule(
        "storage_objects_stamp_updated_at",
        "storage_objects",
        TriggerEvent.BEFORE_UPDATE,
        "stamp_updated_at",
    ),
    TriggerRule(
        "ai_jobs_lifecycle", "ai_jobs", TriggerEvent.BEFORE_UPDATE, "enforce_ai_job_lifecycle"
    ),
)


def build_routines(freeze: bool = True) -> RoutineRegistry:
    """Create a registry holding every declared routine."""
    registry = RoutineRegistry()
    for routine in ROUTINES:
        registry.register(routine)
    if freeze:
        registry.freeze()
    return registry
