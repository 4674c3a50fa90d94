"""
Tests for login, refresh and password change.
"""

import pytest

from forgeguard.auth.credentials import verify_password
from forgeguard.auth.jwt import TokenKind, verify_token
from forgeguard.core.models import Role
from forgeguard.errors import (
    AuthenticationError,
    LockError,
    SubjectInactiveError,
    TokenSignatureError,
    ValidationError,
)
from forgeguard.storage import Collections

from conftest import PASSWORD, add_user, ctx


class TestLogin:
    @pytest.mark.asyncio
    async def test_success(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER, failed_attempts=2)

        response = await services.auth.login("  DEV@example.com ", PASSWORD)

        assert response.user.id == user.id
        assert verify_token(response.access_token).role == Role.DEVELOPER
        assert verify_token(response.refresh_token, TokenKind.REFRESH).sub == user.id
        record = await storage.metadata.get(Collections.USERS, user.id)
        assert record["failed_attempts"] == 0
        assert record["last_login"] is not None

    @pytest.mark.asyncio
    async def test_unknown_and_wrong_password_look_the_same(self, services, storage):
        await add_user(storage, "dev", Role.DEVELOPER)

        with pytest.raises(AuthenticationError) as unknown:
            await services.auth.login("ghost@example.com", PASSWORD)
        with pytest.raises(AuthenticationError) as wrong:
            await services.auth.login("dev@example.com", "Wrong!Pass1")

        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.message == wrong.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_inactive_user_gets_generic_failure(self, services, storage):
        await add_user(storage, "dev", Role.DEVELOPER, is_active=False)

        with pytest.raises(AuthenticationError) as exc_info:
            await services.auth.login("dev@example.com", PASSWORD)
        assert exc_info.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_lock_message_has_no_countdown(self, services, storage):
        await add_user(storage, "dev", Role.DEVELOPER)
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await services.auth.login("dev@example.com", "Wrong!Pass1")

        with pytest.raises(LockError) as exc_info:
            await services.auth.login("dev@example.com", PASSWORD)
        assert "try again later" in exc_info.value.message
        assert not any(ch.isdigit() for ch in exc_info.value.message)

    @pytest.mark.asyncio
    async def test_weak_hash_is_upgraded(self, services, storage, configure):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        configure(password_hash_iterations=1500)

        await services.auth.login("dev@example.com", PASSWORD)

        record = await storage.metadata.get(Collections.USERS, user.id)
        assert record["password_hash"].startswith("pbkdf2_sha256$1500$")
        assert verify_password(PASSWORD, record["password_hash"])

    @pytest.mark.asyncio
    async def test_failed_logins_are_audited(self, services, storage):
        await add_user(storage, "dev", Role.DEVELOPER)
        with pytest.raises(AuthenticationError):
            await services.auth.login("ghost@example.com", PASSWORD)

        entries = await services.audit.entries()
        assert entries[-1].action == "auth.login_failed"
        assert entries[-1].actor_id is None
        assert PASSWORD not in str(entries[-1].to_dict())

    @pytest.mark.asyncio
    async def test_all_services_append_to_one_log(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        await services.auth.login("dev@example.com", PASSWORD)
        await services.auth.login("dev@example.com", PASSWORD)

        assert services.users.audit is services.audit
        entries = await services.audit.entries(actor_id=user.id)
        assert [e.action for e in entries] == ["auth.login", "auth.login"]
        assert len({e.id for e in entries}) == 2
        assert len(await storage.metadata.query(Collections.AUDIT_LOG, limit=None)) == 2


class TestRefresh:
    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, services, storage):
        await add_user(storage, "dev", Role.DEVELOPER)
        tokens = await services.auth.login("dev@example.com", PASSWORD)

        with pytest.raises(TokenSignatureError):
            await services.auth.refresh(tokens.access_token)

    @pytest.mark.asyncio
    async def test_deactivated_user_cannot_refresh(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        tokens = await services.auth.login("dev@example.com", PASSWORD)
        await storage.metadata.update(Collections.USERS, user.id, {"is_active": False})

        with pytest.raises(SubjectInactiveError):
            await services.auth.refresh(tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_carries_current_role(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        tokens = await services.auth.login("dev@example.com", PASSWORD)
        await storage.metadata.update(Collections.USERS, user.id, {"role": Role.PROJECT_LEAD})

        access = await services.auth.refresh(tokens.refresh_token)
        assert verify_token(access.access_token).role == Role.PROJECT_LEAD


class TestChangePassword:
    @pytest.mark.asyncio
    async def test_mismatched_confirmation(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        with pytest.raises(ValidationError) as exc_info:
            await services.auth.change_password(ctx(user), PASSWORD, "N3w!Password", "N3w!Passwor")
        assert "confirm_password" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        with pytest.raises(ValidationError) as exc_info:
            await services.auth.change_password(ctx(user), "Wrong!Pass1", "N3w!Password", "N3w!Password")
        assert "old_password" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_weak_new_password(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        with pytest.raises(ValidationError) as exc_info:
            await services.auth.change_password(ctx(user), PASSWORD, "weakpass", "weakpass")
        assert "new_password" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_new_password_works(self, services, storage):
        user = await add_user(storage, "dev", Role.DEVELOPER)
        await services.auth.change_password(ctx(user), PASSWORD, "N3w!Password", "N3w!Password")

        response = await services.auth.login("dev@example.com", "N3w!Password")
        assert response.user.id == user.id
        with pytest.raises(AuthenticationError):
            await services.auth.login("dev@example.com", PASSWORD)
