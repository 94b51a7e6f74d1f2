"""
Row records returned by the store.

Each record mirrors one table row. Timestamps are Unix milliseconds.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Profile:
    """A principal's profile.

    Attributes:
        id: Principal identifier (primary key)
        username: Unique handle, if chosen
        display_name: Name shown to other users
        avatar_url: Avatar reference
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: str
    username: str | None
    display_name: str | None
    avatar_url: str | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Profile:
        return cls(
            id=row["id"],
            username=row["username"],
            display_name=row["display_name"],
            avatar_url=row["avatar_url"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class Project:
    """A project owned by one principal."""

    id: str
    owner_id: str
    name: str
    description: str | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Project:
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class Connection:
    """External service credentials for one (user, project) pair.

    Attributes:
        id: Connection identifier
        user_id: Principal the credentials belong to (equals the project owner)
        project_id: Owning project
        endpoint_url: Service endpoint
        public_key: Public key material
        encrypted_secret: Encrypted secret material, if stored
        status: active, inactive or error
        last_verified_at: Last successful verification (Unix ms)
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: str
    user_id: str
    project_id: str
    endpoint_url: str
    public_key: str
    encrypted_secret: str | None
    status: str
    last_verified_at: int | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Connection:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            project_id=row["project_id"],
            endpoint_url=row["endpoint_url"],
            public_key=row["public_key"],
            encrypted_secret=row["encrypted_secret"],
            status=row["status"],
            last_verified_at=row["last_verified_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class GeneratedFile:
    """Metadata for a generated artifact. Immutable once created."""

    id: str
    project_id: str
    path: str
    kind: str
    size_bytes: int
    storage_key: str | None
    created_by: str | None
    created_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> GeneratedFile:
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            path=row["path"],
            kind=row["kind"],
            size_bytes=row["size_bytes"],
            storage_key=row["storage_key"],
            created_by=row["created_by"],
            created_at=row["created_at"],
        )


@dataclass
class AiJob:
    """Observability record for an AI invocation."""

    id: str
    project_id: str
    user_id: str | None
    provider: str
    model: str
    status: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    request_id: str | None
    created_at: int
    finished_at: int | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> AiJob:
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"],
            provider=row["provider"],
            model=row["model"],
            status=row["status"],
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
            cost_usd=row["cost_usd"],
            request_id=row["request_id"],
            created_at=row["created_at"],
            finished_at=row["finished_at"],
            metadata=json.loads(row["metadata_json"] or "{}"),
        )


@dataclass
class StorageBucket:
    id: str
    name: str
    public: bool
    created_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> StorageBucket:
        return cls(
            id=row["id"],
            name=row["name"],
            public=bool(row["public"]),
            created_at=row["created_at"],
        )


@dataclass
class StorageObject:
    """Pointer to a blob. The bytes live in the object storage service."""

    id: str
    bucket_id: str
    name: str
    owner_id: str | None
    size_bytes: int
    content_type: str | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> StorageObject:
        return cls(
            id=row["id"],
            bucket_id=row["bucket_id"],
            name=row["name"],
            owner_id=row["owner_id"],
            size_bytes=row["size_bytes"],
            content_type=row["content_type"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
