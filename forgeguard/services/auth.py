"""
Authentication service: login, refresh, password change.

Login failures all look the same to the caller ("Invalid credentials"),
whether the account is unknown, inactive or the password is wrong. Only a
locked account gets a distinct answer, and only after the lock exists.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from pydantic import BaseModel

from forgeguard.auth.context import SubjectContext, load_subject_user
from forgeguard.auth.credentials import hash_password, needs_rehash, verify_dummy, verify_password
from forgeguard.auth.jwt import (
    AccessToken,
    TokenKind,
    TokenPair,
    access_token_lifetime_seconds,
    issue_access_token,
    issue_token_pair,
    verify_token,
)
from forgeguard.auth.lockout import is_locked, register_failure, register_success
from forgeguard.core.models import User, UserResponse
from forgeguard.core.utils import utc_now
from forgeguard.core.validation import normalize_identifier, validate_password
from forgeguard.errors import AuthenticationError, LockError, ValidationError
from forgeguard.services.base import ResourceService
from forgeguard.storage.base import Collections

logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str
    confirm_password: str


class LoginResponse(TokenPair):
    user: UserResponse


# =============================================================================
# Service
# =============================================================================


class AuthService(ResourceService):

    async def _find_by_username(self, username: str) -> User | None:
        records = await self.metadata.query(Collections.USERS, {"username": username}, limit=1)
        return User.model_validate(records[0]) if records else None

    async def login(self, username: str, password: str, now: datetime | None = None) -> LoginResponse:
        """
        Authenticate with username and password.

        Raises:
            LockError: account is locked (checked before the password)
            AuthenticationError: anything else that went wrong
        """
        now = now or utc_now()
        username = normalize_identifier(username)
        user = await self._find_by_username(username)

        if user is None:
            # Same cost as a real check so timing doesn't reveal unknown usernames
            await asyncio.to_thread(verify_dummy, password)
            await self.audit.record(None, "auth.login_failed", "user", username=username)
            raise AuthenticationError()

        if is_locked(user, now):
            await self.audit.record(user.id, "auth.login_locked", "user", user.id)
            raise LockError()

        valid = await asyncio.to_thread(verify_password, password, user.password_hash)

        if not user.is_active:
            await self.audit.record(user.id, "auth.login_inactive", "user", user.id)
            raise AuthenticationError()

        if not valid:
            await register_failure(self.metadata, user.id, now)
            await self.audit.record(user.id, "auth.login_failed", "user", user.id)
            raise AuthenticationError()

        user = await register_success(self.metadata, user.id, now) or user

        if needs_rehash(user.password_hash):
            new_hash = await asyncio.to_thread(hash_password, password)
            await self.metadata.update(Collections.USERS, user.id, {"password_hash": new_hash})
            logger.info(f"Upgraded password hash for {user.id}")

        await self.audit.record(user.id, "auth.login", "user", user.id)
        tokens = issue_token_pair(user.id, user.role, now)
        return LoginResponse(**tokens.model_dump(), user=UserResponse.from_user(user))

    async def refresh(self, refresh_token: str, now: datetime | None = None) -> AccessToken:
        """
        Exchange a refresh token for a new access token.

        The refresh token itself is neither rotated nor revoked.
        """
        claims = verify_token(refresh_token, TokenKind.REFRESH, now)
        user = await load_subject_user(claims, self.metadata)
        return AccessToken(
            access_token=issue_access_token(user.id, user.role, now),
            expires_in=access_token_lifetime_seconds(),
        )

    async def change_password(
        self,
        subject: SubjectContext,
        old_password: str,
        new_password: str,
        confirm_password: str,
        now: datetime | None = None,
    ) -> TokenPair:
        """
        Change the subject's own password.

        Bumps `credential_changed_at`, so every token issued before the
        change fails subject resolution. Returns a fresh token pair.
        """
        if new_password != confirm_password:
            raise ValidationError(
                "Passwords do not match",
                errors={"confirm_password": "Passwords do not match"},
            )
        validate_password(new_password, "new_password")
        if new_password == old_password:
            raise ValidationError(
                "New password must differ from the current password",
                errors={"new_password": "New password must differ from the current password"},
            )

        user = await self.load_user(subject.id)
        if not await asyncio.to_thread(verify_password, old_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect",
                errors={"old_password": "Current password is incorrect"},
            )

        now = now or utc_now()
        new_hash = await asyncio.to_thread(hash_password, new_password)
        await self.metadata.update(
            Collections.USERS,
            user.id,
            {"password_hash": new_hash, "credential_changed_at": now, "updated_at": now},
        )
        await self.audit.record(user.id, "auth.password_changed", "user", user.id)
        return issue_token_pair(user.id, user.role, now)

    async def current_user(self, subject: SubjectContext) -> UserResponse:
        return UserResponse.from_user(await self.load_user(subject.id))
