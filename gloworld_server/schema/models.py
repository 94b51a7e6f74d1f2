"""
Input models for guarded create and update operations.

Unknown fields are rejected (extra="forbid") so a caller cannot smuggle
columns such as owner_id into an update. Immutable columns are simply not
part of the update models.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .types import AiJobStatus, ConnectionStatus, FileKind


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class ProfileUpdate(_Input):
    """Fields an owner may change on their profile."""

    username: str | None = Field(None, min_length=1, max_length=64)
    display_name: str | None = None
    avatar_url: str | None = None
    # Accepted but always overwritten by the timestamp trigger
    updated_at: int | None = None


class ProjectCreate(_Input):
    """Request to create a project."""

    name: str = Field(..., min_length=1, description="Project name")
    description: str | None = None
    owner_id: str | None = Field(None, description="Defaults to the caller")


class ProjectUpdate(_Input):
    """Request to update a project."""

    name: str | None = Field(None, min_length=1)
    description: str | None = None
    updated_at: int | None = None


class ConnectionCreate(_Input):
    """Request to create a connection for a project."""

    project_id: str
    endpoint_url: str = Field(..., min_length=1)
    public_key: str = Field(..., min_length=1)
    encrypted_secret: str | None = None
    user_id: str | None = Field(None, description="Defaults to the caller")
    status: ConnectionStatus = Field(ConnectionStatus.INACTIVE, validate_default=True)


class ConnectionUpdate(_Input):
    """Request to update a connection."""

    endpoint_url: str | None = Field(None, min_length=1)
    public_key: str | None = Field(None, min_length=1)
    encrypted_secret: str | None = None
    status: ConnectionStatus | None = None
    updated_at: int | None = None


class GeneratedFileCreate(_Input):
    """Request to record a generated file."""

    project_id: str
    path: str = Field(..., min_length=1)
    kind: FileKind
    size_bytes: int = Field(0, ge=0)
    storage_key: str | None = None
    created_by: str | None = Field(None, description="Defaults to the caller")


class AiJobCreate(_Input):
    """Request to record a new AI job. Jobs always start queued."""

    project_id: str
    provider: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    request_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = Field(None, description="Defaults to the caller")


class AiJobUpdate(_Input):
    """Request to advance or annotate an AI job."""

    status: AiJobStatus | None = None
    input_tokens: int | None = Field(None, ge=0)
    output_tokens: int | None = Field(None, ge=0)
    cost_usd: float | None = Field(None, ge=0)
    metadata: dict[str, Any] | None = None


class StorageObjectPut(_Input):
    """Request to record a blob pointer in a bucket."""

    bucket_id: str
    name: str = Field(..., min_length=1)
    size_bytes: int = Field(0, ge=0)
    content_type: str | None = None
    owner_id: str | None = None
