"""
Integration tests for guarded operations.

Tests cover:
- Non-owners are denied every operation
- Connection creation requires user_id == project owner
- Connection verification
- Principal deletion cascade
- Public bucket reads and elevated-only storage writes
- Input validation
- Listing and pagination
"""

import pytest
import pytest_asyncio

from gloworld_server.errors import ConstraintViolation, Unauthorized
from gloworld_server.policy import Caller
from gloworld_server.schema.catalog import CatalogKind
from gloworld_server.schema.models import ProjectCreate

U1 = Caller.user("u1")
U2 = Caller.user("u2")


@pytest_asyncio.fixture
async def world(app, register):
    """u1 owns a project with a connection, a file and a job; u2 owns nothing."""
    await register("u1", username="ada")
    await register("u2", username="bob")

    project = await app.guarded.create_project(U1, {"name": "Site", "description": "demo"})
    connection = await app.guarded.create_connection(
        U1,
        {
            "project_id": project.id,
            "endpoint_url": "https://db.example.com",
            "public_key": "pk-1",
            "encrypted_secret": "enc",
        },
    )
    generated = await app.guarded.create_generated_file(
        U1, {"project_id": project.id, "path": "src/App.tsx", "kind": "component", "size_bytes": 10}
    )
    job = await app.guarded.create_ai_job(
        U1, {"project_id": project.id, "provider": "anthropic", "model": "m-1"}
    )
    return {
        "app": app,
        "project": project,
        "connection": connection,
        "file": generated,
        "job": job,
    }


class TestOwnerAccess:
    """Tests for the owning principal."""

    @pytest.mark.asyncio
    async def test_create_defaults_to_caller(self, world):
        assert world["project"].owner_id == "u1"
        assert world["connection"].user_id == "u1"
        assert world["connection"].status == "inactive"
        assert world["file"].created_by == "u1"
        assert world["job"].user_id == "u1"

    @pytest.mark.asyncio
    async def test_owner_reads_everything(self, world):
        guarded = world["app"].guarded
        assert await guarded.get_project(U1, world["project"].id) is not None
        assert await guarded.get_connection(U1, world["connection"].id) is not None
        assert await guarded.get_generated_file(U1, world["file"].id) is not None
        assert await guarded.get_ai_job(U1, world["job"].id) is not None
        assert (await guarded.get_profile(U1, "u1")).username == "ada"

    @pytest.mark.asyncio
    async def test_model_payload_accepted(self, world):
        """Payloads may be passed as input models."""
        project = await world["app"].guarded.create_project(U1, ProjectCreate(name="Other"))
        assert project.owner_id == "u1"

    @pytest.mark.asyncio
    async def test_owner_deletes_project(self, world):
        """Deleting a project removes what it owns."""
        app = world["app"]
        await app.guarded.delete_project(U1, world["project"].id)

        assert await app.guarded.get_connection(U1, world["connection"].id) is None
        stats = app.store.get_stats()
        assert stats["connections"] == 0
        assert stats["generated_files"] == 0
        assert stats["ai_jobs"] == 0

    @pytest.mark.asyncio
    async def test_delete_generated_file(self, world):
        guarded = world["app"].guarded
        await guarded.delete_generated_file(U1, world["file"].id)
        assert await guarded.get_generated_file(U1, world["file"].id) is None


class TestNonOwnerDenied:
    """Tests that a foreign principal can neither see nor touch u1's rows."""

    @pytest.mark.asyncio
    async def test_reads_return_none(self, world):
        guarded = world["app"].guarded
        assert await guarded.get_project(U2, world["project"].id) is None
        assert await guarded.get_connection(U2, world["connection"].id) is None
        assert await guarded.get_generated_file(U2, world["file"].id) is None
        assert await guarded.get_ai_job(U2, world["job"].id) is None
        assert await guarded.get_profile(U2, "u1") is None

    @pytest.mark.asyncio
    async def test_lists_are_filtered(self, world):
        guarded = world["app"].guarded
        project_id = world["project"].id
        assert await guarded.list_projects(U2) == []
        assert await guarded.list_connections(U2, project_id) == []
        assert await guarded.list_generated_files(U2, project_id) == []
        assert await guarded.list_ai_jobs(U2, project_id) == []

    @pytest.mark.asyncio
    async def test_updates_denied(self, world):
        guarded = world["app"].guarded
        with pytest.raises(Unauthorized):
            await guarded.update_project(U2, world["project"].id, {"name": "mine"})
        with pytest.raises(Unauthorized):
            await guarded.update_connection(U2, world["connection"].id, {"status": "active"})
        with pytest.raises(Unauthorized):
            await guarded.update_ai_job(U2, world["job"].id, {"status": "running"})
        with pytest.raises(Unauthorized):
            await guarded.update_profile(U2, "u1", {"display_name": "x"})

        unchanged = await guarded.get_project(U1, world["project"].id)
        assert unchanged.name == "Site"

    @pytest.mark.asyncio
    async def test_deletes_denied(self, world):
        guarded = world["app"].guarded
        with pytest.raises(Unauthorized):
            await guarded.delete_project(U2, world["project"].id)
        with pytest.raises(Unauthorized):
            await guarded.delete_connection(U2, world["connection"].id)
        with pytest.raises(Unauthorized):
            await guarded.delete_generated_file(U2, world["file"].id)

        assert await guarded.get_project(U1, world["project"].id) is not None

    @pytest.mark.asyncio
    async def test_missing_and_foreign_are_indistinguishable(self, world):
        """Updating a foreign row fails exactly like updating a missing one."""
        guarded = world["app"].guarded
        with pytest.raises(Unauthorized) as foreign:
            await guarded.update_project(U2, world["project"].id, {"name": "x"})
        with pytest.raises(Unauthorized) as missing:
            await guarded.update_project(U2, "does-not-exist", {"name": "x"})

        assert foreign.value.message == missing.value.message
        assert foreign.value.code == missing.value.code

    @pytest.mark.asyncio
    async def test_create_under_foreign_project(self, world):
        guarded = world["app"].guarded
        project_id = world["project"].id
        with pytest.raises(Unauthorized):
            await guarded.create_generated_file(
                U2, {"project_id": project_id, "path": "x", "kind": "page"}
            )
        with pytest.raises(Unauthorized):
            await guarded.create_ai_job(
                U2, {"project_id": project_id, "provider": "p", "model": "m"}
            )
        with pytest.raises(Unauthorized):
            await guarded.create_ai_job(
                U2, {"project_id": "missing", "provider": "p", "model": "m"}
            )

    @pytest.mark.asyncio
    async def test_cannot_claim_another_owner(self, world):
        """A caller may not create a project owned by someone else."""
        with pytest.raises(Unauthorized):
            await world["app"].guarded.create_project(U2, {"name": "x", "owner_id": "u1"})

    @pytest.mark.asyncio
    async def test_cannot_claim_another_creator(self, world):
        with pytest.raises(Unauthorized):
            await world["app"].guarded.create_generated_file(
                U1,
                {"project_id": world["project"].id, "path": "x", "kind": "page", "created_by": "u2"},
            )

    @pytest.mark.asyncio
    async def test_anonymous_denied(self, world):
        guarded = world["app"].guarded
        anonymous = Caller.anonymous()
        assert await guarded.get_project(anonymous, world["project"].id) is None
        assert await guarded.list_projects(anonymous) == []
        with pytest.raises(Unauthorized):
            await guarded.create_project(anonymous, {"name": "x"})


class TestConnectionOwnership:
    """Connection scenarios for two principals."""

    @pytest.mark.asyncio
    async def test_user_must_be_project_owner(self, app, register):
        """U1's project accepts a connection for U1 only."""
        await register("u1")
        await register("u2")
        project = await app.guarded.create_project(U1, {"name": "Pr1"})
        payload = {"project_id": project.id, "endpoint_url": "https://x", "public_key": "pk"}

        with pytest.raises(Unauthorized):
            await app.guarded.create_connection(U1, {**payload, "user_id": "u2"})
        with pytest.raises(Unauthorized):
            await app.guarded.create_connection(U2, {**payload, "user_id": "u2"})

        connection = await app.guarded.create_connection(U1, {**payload, "user_id": "u1"})
        assert connection.user_id == "u1"
        assert connection.project_id == project.id

    @pytest.mark.asyncio
    async def test_one_connection_per_project(self, world):
        with pytest.raises(ConstraintViolation):
            await world["app"].guarded.create_connection(
                U1,
                {"project_id": world["project"].id, "endpoint_url": "https://y", "public_key": "k"},
            )

    @pytest.mark.asyncio
    async def test_list_connections(self, world):
        connections = await world["app"].guarded.list_connections(U1)
        assert [c.id for c in connections] == [world["connection"].id]


class TestVerification:
    """Tests for VerificationAction."""

    @pytest.mark.asyncio
    async def test_owner_verifies(self, world, clock):
        app = world["app"]
        verified_at = clock.advance(3000)

        found = await app.verification.verify_connection(U1, world["connection"].id)

        assert found is True
        connection = await app.guarded.get_connection(U1, world["connection"].id)
        assert connection.status == "active"
        assert connection.last_verified_at == verified_at
        assert connection.updated_at == verified_at

    @pytest.mark.asyncio
    async def test_other_principal_not_found(self, world, clock):
        """Another principal's connection looks like a missing one."""
        app = world["app"]
        clock.advance()

        foreign = await app.verification.verify_connection(U2, world["connection"].id)
        missing = await app.verification.verify_connection(U2, "does-not-exist")

        assert foreign is False
        assert missing is False
        connection = await app.guarded.get_connection(U1, world["connection"].id)
        assert connection.status == "inactive"
        assert connection.last_verified_at is None
        assert connection.updated_at == world["connection"].updated_at

    @pytest.mark.asyncio
    async def test_owner_match_is_the_authorization(self, world):
        """Verification does not consult the connection update policy."""
        app = world["app"]
        with app.store.transaction() as conn:
            assert app.catalog.drop(conn, CatalogKind.POLICY, "connections_update")

        assert await app.verification.verify_connection(U1, world["connection"].id) is True
        assert await app.verification.verify_connection(U2, world["connection"].id) is False
        with pytest.raises(Unauthorized):
            await app.guarded.update_connection(U1, world["connection"].id, {"status": "error"})

    @pytest.mark.asyncio
    async def test_anonymous(self, world):
        assert await world["app"].verification.verify_connection(
            Caller.anonymous(), world["connection"].id
        ) is False


class TestPrincipalDeletion:
    """Tests for the principal deletion cascade."""

    @pytest.mark.asyncio
    async def test_cascade(self, world):
        """Deleting u1 removes the profile, projects and everything below."""
        app = world["app"]
        other = await app.guarded.create_project(U2, {"name": "Bob's"})

        assert await app.identity.principal_deleted("u1") is True

        stats = app.store.get_stats()
        assert stats["principals"] == 1
        assert stats["profiles"] == 1
        assert stats["projects"] == 1
        assert stats["connections"] == 0
        assert stats["generated_files"] == 0
        assert stats["ai_jobs"] == 0
        assert await app.guarded.get_project(U2, other.id) is not None

    @pytest.mark.asyncio
    async def test_unknown_principal(self, app):
        assert await app.identity.principal_deleted("ghost") is False


class TestStorage:
    """Tests for the public assets bucket."""

    @pytest.mark.asyncio
    async def test_bucket_public_to_anyone(self, app):
        bucket = await app.guarded.get_bucket(Caller.anonymous(), "gloworld-assets")
        assert bucket is not None
        assert bucket.public is True

    @pytest.mark.asyncio
    async def test_user_cannot_write(self, app, register):
        await register("u1")
        with pytest.raises(Unauthorized):
            await app.guarded.put_storage_object(
                U1, {"bucket_id": "gloworld-assets", "name": "logo.png"}
            )

    @pytest.mark.asyncio
    async def test_elevated_write_public_read(self, app, clock):
        service = Caller.elevated("asset-upload")
        stored = await app.guarded.put_storage_object(
            service,
            {"bucket_id": "gloworld-assets", "name": "logo.png", "size_bytes": 5, "content_type": "image/png"},
        )

        later = clock.advance()
        replaced = await app.guarded.put_storage_object(
            service, {"bucket_id": "gloworld-assets", "name": "logo.png", "size_bytes": 9}
        )
        assert replaced.id == stored.id
        assert replaced.size_bytes == 9
        assert replaced.updated_at == later

        anonymous = Caller.anonymous()
        objects = await app.guarded.list_storage_objects(anonymous, "gloworld-assets")
        assert [o.name for o in objects] == ["logo.png"]
        assert await app.guarded.get_storage_object(anonymous, stored.id) is not None

    @pytest.mark.asyncio
    async def test_private_bucket_hidden(self, app):
        service = Caller.elevated("setup")
        with app.store.transaction() as conn:
            app.store.insert(
                conn,
                "storage_buckets",
                {"id": "private", "name": "private", "public": 0, "created_at": 1},
            )
        stored = await app.guarded.put_storage_object(
            service, {"bucket_id": "private", "name": "secret.txt"}
        )

        anonymous = Caller.anonymous()
        assert await app.guarded.get_bucket(anonymous, "private") is None
        assert await app.guarded.get_storage_object(anonymous, stored.id) is None
        assert await app.guarded.list_storage_objects(anonymous, "private") == []

    @pytest.mark.asyncio
    async def test_missing_bucket(self, app):
        with pytest.raises(ConstraintViolation):
            await app.guarded.put_storage_object(
                Caller.elevated("setup"), {"bucket_id": "nope", "name": "x"}
            )


class TestInputValidation:
    """Tests for payload validation."""

    @pytest.mark.asyncio
    async def test_unknown_field(self, world):
        """Unknown fields cannot be smuggled into an update."""
        with pytest.raises(ConstraintViolation) as exc_info:
            await world["app"].guarded.update_project(
                U1, world["project"].id, {"owner_id": "u2"}
            )
        assert exc_info.value.constraint == "input"
        assert any("owner_id" in e for e in exc_info.value.errors)

    @pytest.mark.asyncio
    async def test_bad_enum(self, world):
        with pytest.raises(ConstraintViolation):
            await world["app"].guarded.update_connection(
                U1, world["connection"].id, {"status": "paused"}
            )

    @pytest.mark.asyncio
    async def test_missing_required(self, world):
        with pytest.raises(ConstraintViolation):
            await world["app"].guarded.create_generated_file(
                U1, {"project_id": world["project"].id, "kind": "page"}
            )

    @pytest.mark.asyncio
    async def test_username_taken(self, world):
        with pytest.raises(ConstraintViolation) as exc_info:
            await world["app"].guarded.update_profile(U2, "u2", {"username": "ada"})
        assert exc_info.value.constraint == "profiles.username"


class TestListing:
    """Tests for list ordering and pagination."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, app, register, clock):
        await register("u1")
        for i in range(5):
            clock.advance()
            await app.guarded.create_project(U1, {"name": f"p{i}"})

        page = await app.guarded.list_projects(U1, limit=2, offset=1)
        assert [p.name for p in page] == ["p3", "p2"]
        assert len(await app.guarded.list_projects(U1)) == 5

    @pytest.mark.asyncio
    async def test_list_ai_jobs_by_status(self, world):
        app = world["app"]
        await app.guarded.update_ai_job(U1, world["job"].id, {"status": "running"})

        running = await app.guarded.list_ai_jobs(U1, world["project"].id, status="running")
        queued = await app.guarded.list_ai_jobs(U1, world["project"].id, status="queued")
        assert [j.id for j in running] == [world["job"].id]
        assert queued == []

    @pytest.mark.asyncio
    async def test_negative_pagination(self, world):
        with pytest.raises(ConstraintViolation):
            await world["app"].guarded.list_projects(U1, limit=-1)
