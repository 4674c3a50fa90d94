"""
HTTP-level tests: routing, status codes and error bodies.
"""

import asyncio
import io

import pytest
from fastapi import UploadFile
from fastapi.testclient import TestClient

from forgeguard.api.app import create_app
from forgeguard.api.documents import read_upload
from forgeguard.auth import policies
from forgeguard.config import get_settings
from forgeguard.core.models import Role
from forgeguard.errors import ValidationError
from forgeguard.storage import create_local_storage

from conftest import PASSWORD, add_user


class Seeded:
    def __init__(self, client: TestClient, users: dict):
        self.client = client
        self.users = users

    def login(self, name: str, password: str = PASSWORD) -> dict:
        response = self.client.post("/auth/login", json={"username": f"{name}@example.com", "password": password})
        assert response.status_code == 200, response.text
        return response.json()

    def headers(self, name: str) -> dict:
        return {"Authorization": f"Bearer {self.login(name)['access_token']}"}


@pytest.fixture
def api(tmp_path) -> Seeded:
    storage = create_local_storage(str(tmp_path))

    async def seed():
        return {
            "admin": await add_user(storage, "admin", Role.ADMIN),
            "lead": await add_user(storage, "lead", Role.PROJECT_LEAD),
            "devone": await add_user(storage, "devone", Role.DEVELOPER),
            "devtwo": await add_user(storage, "devtwo", Role.DEVELOPER),
        }

    users = asyncio.run(seed())
    return Seeded(TestClient(create_app(get_settings(), storage)), users)


# =============================================================================
# Authentication
# =============================================================================


class TestAuthRoutes:
    def test_health(self, api):
        response = api.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_login_then_me(self, api):
        tokens = api.login("devone")
        assert tokens["token_type"] == "bearer"
        assert "password_hash" not in tokens["user"]

        response = api.client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert response.status_code == 200
        assert response.json()["id"] == api.users["devone"].id

    def test_subject_is_tagged_for_error_reports(self, api, monkeypatch):
        tagged = []
        monkeypatch.setattr(policies, "set_user", lambda user_id, role=None: tagged.append((user_id, role)))

        api.client.get("/auth/me", headers=api.headers("devone"))

        assert tagged == [(api.users["devone"].id, "developer")]

    def test_missing_and_bad_tokens(self, api):
        missing = api.client.get("/auth/me")
        assert missing.status_code == 401
        assert missing.headers["www-authenticate"] == "Bearer"

        bad = api.client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert bad.status_code == 401

    def test_refresh_token_is_not_an_access_token(self, api):
        tokens = api.login("devone")
        response = api.client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert response.status_code == 401

    def test_refresh(self, api):
        tokens = api.login("devone")
        response = api.client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 200
        access = response.json()["access_token"]
        assert api.client.get("/auth/me", headers={"Authorization": f"Bearer {access}"}).status_code == 200

    def test_wrong_password(self, api):
        response = api.client.post("/auth/login", json={"username": "devone@example.com", "password": "Wrong!Pass1"})
        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid credentials"}

    def test_login_is_throttled(self, api):
        body = {"username": "nobody@example.com", "password": "Wrong!Pass1"}
        statuses = [api.client.post("/auth/login", json=body).status_code for _ in range(6)]
        assert statuses == [401] * 5 + [429]

    def test_change_password_invalidates_old_token(self, api):
        old = api.login("devone")
        old_headers = {"Authorization": f"Bearer {old['access_token']}"}

        response = api.client.put(
            "/auth/change-password",
            headers=old_headers,
            json={"old_password": PASSWORD, "new_password": "N3w!Password", "confirm_password": "N3w!Password"},
        )
        assert response.status_code == 200
        new_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}

        assert api.client.get("/auth/me", headers=old_headers).status_code == 401
        assert api.client.get("/auth/me", headers=new_headers).status_code == 200


# =============================================================================
# Users
# =============================================================================


class TestUserRoutes:
    def test_developer_cannot_list_users(self, api):
        response = api.client.get("/users", headers=api.headers("devone"))
        assert response.status_code == 403

    def test_admin_lists_and_creates(self, api):
        headers = api.headers("admin")
        created = api.client.post(
            "/users",
            headers=headers,
            json={
                "username": "new@example.com",
                "email": "new@example.com",
                "password": PASSWORD,
                "full_name": "New Person",
                "role": "developer",
            },
        )
        assert created.status_code == 201

        listed = api.client.get("/users", headers=headers)
        assert created.json()["id"] in {u["id"] for u in listed.json()}

    def test_validation_errors_are_400(self, api):
        response = api.client.post("/users", headers=api.headers("admin"), json={"username": "x"})
        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert "password" in body["errors"]

    def test_service_validation_errors_list_fields(self, api):
        response = api.client.post(
            "/users",
            headers=api.headers("admin"),
            json={"username": "x", "email": "x@example.com", "password": "weak", "full_name": "X Y"},
        )
        assert response.status_code == 400
        assert {"username", "password"} <= set(response.json()["errors"])


# =============================================================================
# Projects + documents
# =============================================================================


class TestProjectAndDocumentRoutes:
    def create_project(self, api) -> dict:
        response = api.client.post(
            "/projects",
            headers=api.headers("lead"),
            json={"name": "Apollo", "assigned_developers": [api.users["devone"].id]},
        )
        assert response.status_code == 201, response.text
        return response.json()

    def test_project_visibility(self, api):
        project = self.create_project(api)

        assert api.client.get(f"/projects/{project['id']}", headers=api.headers("devone")).status_code == 200
        assert api.client.get(f"/projects/{project['id']}", headers=api.headers("devtwo")).status_code == 403
        assert api.client.get("/projects/proj_missing", headers=api.headers("devtwo")).status_code == 404
        assert api.client.get("/projects", headers=api.headers("devtwo")).json() == []

    def test_upload_and_download(self, api):
        project = self.create_project(api)

        uploaded = api.client.post(
            f"/documents/project/{project['id']}/upload",
            headers=api.headers("lead"),
            files={"file": ("plan notes.txt", b"the plan", "text/plain")},
            data={"classification": "confidential"},
        )
        assert uploaded.status_code == 201, uploaded.text
        document = uploaded.json()
        assert document["classification"] == "confidential"

        download = api.client.get(f"/documents/{document['id']}/download", headers=api.headers("devone"))
        assert download.status_code == 200
        assert download.content == b"the plan"
        assert "plan%20notes.txt" in download.headers["content-disposition"]

        denied = api.client.get(f"/documents/{document['id']}/download", headers=api.headers("devtwo"))
        assert denied.status_code == 403

        log = api.client.get(f"/documents/{document['id']}/access-log", headers=api.headers("lead"))
        assert [entry["action"] for entry in log.json()] == ["downloaded"]

    def test_developer_cannot_upload(self, api):
        project = self.create_project(api)
        response = api.client.post(
            f"/documents/project/{project['id']}/upload",
            headers=api.headers("devone"),
            files={"file": ("plan.txt", b"the plan", "text/plain")},
        )
        assert response.status_code == 403

    def test_completion_request_conflict(self, api):
        project = self.create_project(api)
        headers = api.headers("devone")
        body = {"content": "done", "type": "completion-request"}

        first = api.client.post(f"/messages/project/{project['id']}", headers=headers, json=body)
        second = api.client.post(f"/messages/project/{project['id']}", headers=headers, json=body)

        assert first.status_code == 201, first.text
        assert second.status_code == 409

        review = api.client.post(
            f"/messages/{first.json()['id']}/review",
            headers=api.headers("lead"),
            json={"approved": True},
        )
        assert review.status_code == 200
        assert api.client.get(f"/projects/{project['id']}", headers=headers).json()["status"] == "completed"

    def test_oversized_upload_is_rejected(self, api, configure):
        project = self.create_project(api)
        configure(max_file_size=1024)

        response = api.client.post(
            f"/documents/project/{project['id']}/upload",
            headers=api.headers("lead"),
            files={"file": ("big.txt", b"x" * 4096, "text/plain")},
        )

        assert response.status_code == 400
        assert "file" in response.json()["errors"]
        listed = api.client.get(f"/documents/project/{project['id']}", headers=api.headers("lead"))
        assert listed.json() == []


class TestReadUpload:
    @pytest.mark.asyncio
    async def test_stops_one_byte_past_the_limit(self):
        upload = UploadFile(file=io.BytesIO(b"x" * 10_000), filename="big.txt")

        with pytest.raises(ValidationError):
            await read_upload(upload, 1024)
        assert upload.file.tell() == 1025

    @pytest.mark.asyncio
    async def test_small_file_is_read_whole(self):
        upload = UploadFile(file=io.BytesIO(b"plan"), filename="plan.txt")
        assert await read_upload(upload, 1024) == b"plan"
