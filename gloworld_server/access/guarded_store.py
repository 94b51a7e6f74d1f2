"""
Guarded store: every caller-facing read and write for Gloworld.

Each operation opens one store transaction, runs the policy evaluator
inside it, and only then reads or mutates. Triggers fired by the mutation
run in the same transaction.

Outcomes for rows the caller may not access:
    get_*       None, exactly as if the row did not exist
    list_*      the row is left out
    update_*, delete_*, create_* referencing a foreign or missing parent
                Unauthorized, with the same message in both cases

Invariants:
    - No path reads or writes a table without going through the evaluator
    - Input payloads are validated before the transaction opens
    - Immutable columns (owner_id, project_id, created_at, finished_at)
      are not part of any update model

How to change safely:
    - New operations must use _create/_get/_list/_update/_delete
    - Grant access by declaring a policy, not by skipping authorize()
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ConstraintViolation, Unauthorized
from ..policy.caller import Caller
from ..policy.evaluator import PolicyEvaluator
from ..policy.rules import Operation
from ..schema.models import (
    AiJobCreate,
    AiJobUpdate,
    ConnectionCreate,
    ConnectionUpdate,
    GeneratedFileCreate,
    ProfileUpdate,
    ProjectCreate,
    ProjectUpdate,
    StorageObjectPut,
)
from ..schema.tables import get_table
from ..schema.types import AiJobStatus
from ..store.entity_store import EntityStore
from ..store.records import (
    AiJob,
    Connection,
    GeneratedFile,
    Profile,
    Project,
    StorageBucket,
    StorageObject,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Payload = Mapping[str, Any] | BaseModel


def _new_id() -> str:
    return str(uuid.uuid4())


class GuardedStore:
    """Policy-checked operations on the entity store.

    Thread safety:
        Stateless apart from its collaborators; each call uses its own
        transaction.

    Example:
        >>> guarded = GuardedStore(store, evaluator)
        >>> project = await guarded.create_project(Caller.user("u1"), {"name": "Site"})
        >>> await guarded.get_project(Caller.user("u2"), project.id)
        None
    """

    def __init__(self, store: EntityStore, evaluator: PolicyEvaluator) -> None:
        self.store = store
        self.evaluator = evaluator

    # --- Helpers ---

    def _validate(self, model: type[M], payload: Payload) -> M:
        if isinstance(payload, model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(exclude_unset=True)
        try:
            return model.model_validate(dict(payload))
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConstraintViolation(
                f"Invalid {model.__name__}", constraint="input", errors=errors
            ) from e

    def _create(self, caller: Caller, table: str, values: dict[str, Any]) -> dict[str, Any]:
        now = self.store.now()
        values = {"id": _new_id(), **values}
        values.setdefault("created_at", now)
        if get_table(table).get_column("updated_at") is not None:
            values.setdefault("updated_at", now)

        with self.store.transaction() as conn:
            self.evaluator.authorize(conn, caller, table, Operation.CREATE, proposed=values)
            row = self.store.insert(conn, table, values)

        logger.info(
            f"Created {table} row",
            extra={"table": table, "row_id": row["id"], "caller": str(caller)},
        )
        return row

    def _get(self, caller: Caller, table: str, row_id: str) -> dict[str, Any] | None:
        with self.store.transaction(immediate=False) as conn:
            row = self.store.fetch(conn, table, row_id)
            if row is None:
                return None
            if not self.evaluator.is_allowed(conn, caller, table, Operation.READ, existing=row):
                return None
            return row

    def _list(
        self,
        caller: Caller,
        table: str,
        where: Mapping[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        if limit < 0 or offset < 0:
            raise ConstraintViolation("limit and offset must be >= 0", constraint="pagination")
        with self.store.transaction(immediate=False) as conn:
            rows = self.store.fetch_where(conn, table, where)
            visible = self.evaluator.filter_visible(conn, caller, table, rows)
        return [dict(row) for row in visible[offset : offset + limit]]

    def _update(
        self,
        caller: Caller,
        table: str,
        row_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        with self.store.transaction() as conn:
            existing = self.store.fetch(conn, table, row_id)
            if existing is None:
                raise Unauthorized(table, row_id)
            proposed = {**existing, **changes}
            self.evaluator.authorize(
                conn, caller, table, Operation.UPDATE, existing=existing, proposed=proposed
            )
            row = self.store.update(conn, table, row_id, changes)

        if row is None:
            raise Unauthorized(table, row_id)
        logger.info(
            f"Updated {table} row",
            extra={"table": table, "row_id": row_id, "columns": sorted(changes)},
        )
        return row

    def _delete(self, caller: Caller, table: str, row_id: str) -> None:
        with self.store.transaction() as conn:
            existing = self.store.fetch(conn, table, row_id)
            if existing is None:
                raise Unauthorized(table, row_id)
            self.evaluator.authorize(conn, caller, table, Operation.DELETE, existing=existing)
            self.store.delete(conn, table, row_id)

        logger.info(f"Deleted {table} row", extra={"table": table, "row_id": row_id})

    # --- Profiles ---

    async def get_profile(self, caller: Caller, principal_id: str) -> Profile | None:
        row = self._get(caller, "profiles", principal_id)
        return Profile.from_row(row) if row else None

    async def update_profile(
        self, caller: Caller, principal_id: str, payload: Payload
    ) -> Profile:
        """Update the caller's own profile.

        Raises:
            Unauthorized: If the profile is not the caller's or does not exist
            ConstraintViolation: If the username is taken or input is invalid
        """
        update = self._validate(ProfileUpdate, payload)
        row = self._update(caller, "profiles", principal_id, update.model_dump(exclude_unset=True))
        return Profile.from_row(row)

    # --- Projects ---

    async def create_project(self, caller: Caller, payload: Payload) -> Project:
        """Create a project owned by the caller.

        A caller-supplied owner_id must equal the caller.

        Raises:
            Unauthorized: If owner_id names another principal
            ConstraintViolation: If input is invalid
        """
        create = self._validate(ProjectCreate, payload)
        values = create.model_dump()
        values["owner_id"] = create.owner_id or caller.principal_id
        return Project.from_row(self._create(caller, "projects", values))

    async def get_project(self, caller: Caller, project_id: str) -> Project | None:
        row = self._get(caller, "projects", project_id)
        return Project.from_row(row) if row else None

    async def list_projects(
        self, caller: Caller, limit: int = 100, offset: int = 0
    ) -> list[Project]:
        """Projects the caller owns, newest first."""
        if caller.is_anonymous:
            return []
        where = None if caller.privileged else {"owner_id": caller.principal_id}
        rows = self._list(caller, "projects", where, limit, offset)
        return [Project.from_row(row) for row in rows]

    async def update_project(self, caller: Caller, project_id: str, payload: Payload) -> Project:
        update = self._validate(ProjectUpdate, payload)
        row = self._update(caller, "projects", project_id, update.model_dump(exclude_unset=True))
        return Project.from_row(row)

    async def delete_project(self, caller: Caller, project_id: str) -> None:
        """Delete a project and, through cascades, everything it owns."""
        self._delete(caller, "projects", project_id)

    # --- Connections ---

    async def create_connection(self, caller: Caller, payload: Payload) -> Connection:
        """Create the caller's connection for one of the caller's projects.

        Raises:
            Unauthorized: If the project is not the caller's, or user_id
                names another principal
            ConstraintViolation: If the caller already has a connection for
                the project, or input is invalid
        """
        create = self._validate(ConnectionCreate, payload)
        values = create.model_dump()
        values["user_id"] = create.user_id or caller.principal_id
        return Connection.from_row(self._create(caller, "connections", values))

    async def get_connection(self, caller: Caller, connection_id: str) -> Connection | None:
        row = self._get(caller, "connections", connection_id)
        return Connection.from_row(row) if row else None

    async def list_connections(
        self,
        caller: Caller,
        project_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Connection]:
        if caller.is_anonymous:
            return []
        where: dict[str, Any] = {}
        if not caller.privileged:
            where["user_id"] = caller.principal_id
        if project_id is not None:
            where["project_id"] = project_id
        rows = self._list(caller, "connections", where, limit, offset)
        return [Connection.from_row(row) for row in rows]

    async def update_connection(
        self, caller: Caller, connection_id: str, payload: Payload
    ) -> Connection:
        update = self._validate(ConnectionUpdate, payload)
        row = self._update(
            caller, "connections", connection_id, update.model_dump(exclude_unset=True)
        )
        return Connection.from_row(row)

    async def delete_connection(self, caller: Caller, connection_id: str) -> None:
        self._delete(caller, "connections", connection_id)

    # --- Generated files ---

    async def create_generated_file(self, caller: Caller, payload: Payload) -> GeneratedFile:
        create = self._validate(GeneratedFileCreate, payload)
        values = create.model_dump()
        values["created_by"] = create.created_by or caller.principal_id
        return GeneratedFile.from_row(self._create(caller, "generated_files", values))

    async def get_generated_file(self, caller: Caller, file_id: str) -> GeneratedFile | None:
        row = self._get(caller, "generated_files", file_id)
        return GeneratedFile.from_row(row) if row else None

    async def list_generated_files(
        self, caller: Caller, project_id: str, limit: int = 100, offset: int = 0
    ) -> list[GeneratedFile]:
        rows = self._list(caller, "generated_files", {"project_id": project_id}, limit, offset)
        return [GeneratedFile.from_row(row) for row in rows]

    async def delete_generated_file(self, caller: Caller, file_id: str) -> None:
        self._delete(caller, "generated_files", file_id)

    # --- AI jobs ---

    async def create_ai_job(self, caller: Caller, payload: Payload) -> AiJob:
        """Record a new AI job. Jobs always start queued."""
        create = self._validate(AiJobCreate, payload)
        values = create.model_dump(exclude={"metadata"})
        values["user_id"] = create.user_id or caller.principal_id
        values["status"] = AiJobStatus.QUEUED.value
        values["metadata_json"] = json.dumps(create.metadata, sort_keys=True)
        return AiJob.from_row(self._create(caller, "ai_jobs", values))

    async def get_ai_job(self, caller: Caller, job_id: str) -> AiJob | None:
        row = self._get(caller, "ai_jobs", job_id)
        return AiJob.from_row(row) if row else None

    async def list_ai_jobs(
        self,
        caller: Caller,
        project_id: str,
        status: AiJobStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AiJob]:
        where: dict[str, Any] = {"project_id": project_id}
        if status is not None:
            where["status"] = AiJobStatus(status).value
        rows = self._list(caller, "ai_jobs", where, limit, offset)
        return [AiJob.from_row(row) for row in rows]

    async def update_ai_job(self, caller: Caller, job_id: str, payload: Payload) -> AiJob:
        """Advance or annotate an AI job.

        Raises:
            Unauthorized: If the job's project is not the caller's
            ConstraintViolation: If the status transition is not allowed
        """
        update = self._validate(AiJobUpdate, payload)
        changes = update.model_dump(exclude_unset=True)
        if "metadata" in changes:
            changes["metadata_json"] = json.dumps(changes.pop("metadata") or {}, sort_keys=True)
        return AiJob.from_row(self._update(caller, "ai_jobs", job_id, changes))

    # --- Storage ---

    async def get_bucket(self, caller: Caller, bucket_id: str) -> StorageBucket | None:
        row = self._get(caller, "storage_buckets", bucket_id)
        return StorageBucket.from_row(row) if row else None

    async def get_storage_object(self, caller: Caller, object_id: str) -> StorageObject | None:
        row = self._get(caller, "storage_objects", object_id)
        return StorageObject.from_row(row) if row else None

    async def list_storage_objects(
        self, caller: Caller, bucket_id: str, limit: int = 100, offset: int = 0
    ) -> list[StorageObject]:
        """Objects of a bucket. Public buckets are readable by anyone."""
        rows = self._list(caller, "storage_objects", {"bucket_id": bucket_id}, limit, offset)
        return [StorageObject.from_row(row) for row in rows]

    async def put_storage_object(self, caller: Caller, payload: Payload) -> StorageObject:
        """Record a blob pointer, replacing the entry with the same name.

        No policy grants storage writes, so only elevated callers succeed.

        Raises:
            Unauthorized: If the caller is not elevated
            ConstraintViolation: If the bucket does not exist
        """
        put = self._validate(StorageObjectPut, payload)
        values = put.model_dump()
        now = self.store.now()

        with self.store.transaction() as conn:
            existing = self.store.fetch_where(
                conn, "storage_objects", {"bucket_id": put.bucket_id, "name": put.name}, limit=1
            )
            if existing:
                current = existing[0]
                proposed = {**current, **values}
                self.evaluator.authorize(
                    conn,
                    caller,
                    "storage_objects",
                    Operation.UPDATE,
                    existing=current,
                    proposed=proposed,
                )
                row = self.store.update(conn, "storage_objects", current["id"], values)
            else:
                values = {"id": _new_id(), **values, "created_at": now, "updated_at": now}
                self.evaluator.authorize(
                    conn, caller, "storage_objects", Operation.CREATE, proposed=values
                )
                row = self.store.insert(conn, "storage_objects", values)
            if row is None:
                raise Unauthorized("storage_objects", put.name)

        logger.info(
            "Stored object pointer",
            extra={"bucket_id": put.bucket_id, "object_name": put.name, "caller": str(caller)},
        )
        return StorageObject.from_row(row)
