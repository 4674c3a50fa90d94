"""
User management service (admin only, plus the assignable-developer list).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.credentials import hash_password
from forgeguard.auth.policies import can_manage_user
from forgeguard.core.models import Role, User, UserResponse, to_record
from forgeguard.core.utils import utc_now
from forgeguard.core.validation import (
    normalize_identifier,
    validate_new_user,
    validate_password,
    validate_user_update,
)
from forgeguard.errors import AuthorizationError, ConflictError, DenialReason
from forgeguard.services.base import ResourceService
from forgeguard.storage.base import Collections

logger = logging.getLogger(__name__)


class UserCreate(BaseModel):
    username: str
    email: str
    password: str
    full_name: str
    role: Role = Role.DEVELOPER


class UserUpdate(BaseModel):
    email: str | None = None
    full_name: str | None = None
    role: Role | None = None
    is_active: bool | None = None


class PasswordReset(BaseModel):
    new_password: str


def check_role_change(user_id: str, new_role: Role, projects: list[dict[str, Any]]) -> None:
    """A project lead must stay admin/lead; an assigned developer must stay a developer."""
    if new_role == Role.DEVELOPER and any(p.get("project_lead") == user_id for p in projects):
        raise ConflictError(
            "User leads projects; reassign them first",
            errors={"role": "User is the lead of one or more projects"},
        )
    if new_role != Role.DEVELOPER and any(user_id in p.get("assigned_developers", []) for p in projects):
        raise ConflictError(
            "User is assigned to projects as a developer; unassign them first",
            errors={"role": "User is an assigned developer of one or more projects"},
        )


class UserService(ResourceService):

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_users(
        self,
        actor: SubjectContext,
        role: Role | None = None,
        is_active: bool | None = None,
    ) -> list[UserResponse]:
        self.gate(actor, Operation.USER_LIST)
        filters: dict[str, Any] = {}
        if role is not None:
            filters["role"] = role
        if is_active is not None:
            filters["is_active"] = is_active
        users = await self._load_all(Collections.USERS, User, **filters)
        users.sort(key=lambda user: user.created_at, reverse=True)
        return [UserResponse.from_user(user) for user in users]

    async def get_user(self, actor: SubjectContext, user_id: str) -> UserResponse:
        self.gate(actor, Operation.USER_READ)
        return UserResponse.from_user(await self.load_user(user_id))

    async def list_assignable(self, actor: SubjectContext) -> list[UserResponse]:
        """Active developers that can be put on a project."""
        self.gate(actor, Operation.USER_LIST_ASSIGNABLE)
        users = await self._load_all(Collections.USERS, User, role=Role.DEVELOPER, is_active=True)
        users.sort(key=lambda user: user.full_name)
        return [UserResponse.from_user(user) for user in users]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _insert_user(self, data: UserCreate, now: datetime) -> User:
        username = normalize_identifier(data.username)
        email = normalize_identifier(data.email)
        validate_new_user(username, email, data.password, data.full_name)

        if await self.metadata.query(Collections.USERS, {"email": email}, limit=1):
            raise ConflictError("User with this email already exists", errors={"email": "Already in use"})

        user = User(
            username=username,
            email=email,
            full_name=data.full_name.strip(),
            role=data.role,
            password_hash=await asyncio.to_thread(hash_password, data.password),
            credential_changed_at=now,
            created_at=now,
            updated_at=now,
        )
        inserted = await self.metadata.insert_unless(
            Collections.USERS, user.id, to_record(user), {"username": username}
        )
        if not inserted:
            raise ConflictError("User with this username already exists", errors={"username": "Already in use"})
        return user

    async def create_user(self, actor: SubjectContext, data: UserCreate) -> UserResponse:
        self.gate(actor, Operation.USER_CREATE)
        user = await self._insert_user(data, utc_now())
        await self.audit.record(actor.id, "user.create", "user", user.id, role=user.role.value)
        logger.info(f"User {user.id} created by {actor.id}")
        return UserResponse.from_user(user)

    async def update_user(self, actor: SubjectContext, user_id: str, data: UserUpdate) -> UserResponse:
        """
        Update profile, role or active flag.

        Admins cannot change their own role or deactivate themselves here.
        A role change is refused while it would break a project's team rules.
        """
        self.gate(actor, Operation.USER_UPDATE)
        user = await self.load_user(user_id)

        changes_role = data.role is not None and data.role != user.role
        if not can_manage_user(actor, user.id, Operation.USER_UPDATE, changes_role=changes_role):
            raise AuthorizationError("You cannot change your own role", reason=DenialReason.SELF_TARGET)
        if data.is_active is False and not can_manage_user(actor, user.id, Operation.USER_DEACTIVATE):
            raise AuthorizationError("You cannot deactivate your own account", reason=DenialReason.SELF_TARGET)

        email = normalize_identifier(data.email) if data.email is not None else None
        validate_user_update(email, data.full_name)

        now = utc_now()
        updates: dict[str, Any] = {"updated_at": now}
        if email is not None and email != user.email:
            existing = await self.metadata.query(Collections.USERS, {"email": email}, limit=1)
            if existing:
                raise ConflictError("User with this email already exists", errors={"email": "Already in use"})
            updates["email"] = email
        if data.full_name is not None:
            updates["full_name"] = data.full_name.strip()
        if data.is_active is not None:
            updates["is_active"] = data.is_active
        if changes_role:
            new_role = data.role

            def apply(record: dict[str, Any], projects: list[dict[str, Any]]) -> dict[str, Any]:
                check_role_change(user.id, new_role, projects)
                return {**updates, "role": new_role}

            # Checked against the projects in the same step as the write
            await self.metadata.modify_related(Collections.USERS, user.id, Collections.PROJECTS, apply)
            updates["role"] = new_role
        else:
            await self.metadata.update(Collections.USERS, user.id, updates)

        await self.audit.record(
            actor.id, "user.update", "user", user.id,
            fields=sorted(k for k in updates if k != "updated_at"),
        )
        return UserResponse.from_user(await self.load_user(user.id))

    async def deactivate_user(self, actor: SubjectContext, user_id: str) -> UserResponse:
        self.gate(actor, Operation.USER_DEACTIVATE)
        user = await self.load_user(user_id)
        if not can_manage_user(actor, user.id, Operation.USER_DEACTIVATE):
            raise AuthorizationError("You cannot deactivate your own account", reason=DenialReason.SELF_TARGET)

        await self.metadata.update(Collections.USERS, user.id, {"is_active": False, "updated_at": utc_now()})
        await self.audit.record(actor.id, "user.deactivate", "user", user.id)
        return UserResponse.from_user(await self.load_user(user.id))

    async def reset_password(self, actor: SubjectContext, user_id: str, new_password: str) -> None:
        """Set a new password and clear any lock. Existing tokens become stale."""
        self.gate(actor, Operation.USER_RESET_PASSWORD)
        user = await self.load_user(user_id)
        validate_password(new_password, "new_password")

        now = utc_now()
        await self.metadata.update(
            Collections.USERS,
            user.id,
            {
                "password_hash": await asyncio.to_thread(hash_password, new_password),
                "credential_changed_at": now,
                "failed_attempts": 0,
                "locked_until": None,
                "updated_at": now,
            },
        )
        await self.audit.record(actor.id, "user.reset_password", "user", user.id)

    async def delete_user(self, actor: SubjectContext, user_id: str) -> None:
        """
        Delete a user.

        Refused while the user created or leads any project. Otherwise the
        user is removed from every project team and document access list.
        """
        self.gate(actor, Operation.USER_DELETE)
        user = await self.load_user(user_id)
        if not can_manage_user(actor, user.id, Operation.USER_DELETE):
            raise AuthorizationError("You cannot delete your own account", reason=DenialReason.SELF_TARGET)

        projects = await self.metadata.query(Collections.PROJECTS, limit=None)
        if any(user.id in (p.get("created_by"), p.get("project_lead")) for p in projects):
            raise ConflictError(
                "User owns or leads projects; reassign them first",
                errors={"user_id": "User owns or leads one or more projects"},
            )

        for project in projects:
            if user.id in project.get("assigned_developers", []):
                await self.metadata.modify(
                    Collections.PROJECTS,
                    project["id"],
                    lambda record: {
                        "assigned_developers": [d for d in record["assigned_developers"] if d != user.id]
                    },
                )

        documents = await self.metadata.query(Collections.DOCUMENTS, limit=None)
        for document in documents:
            if any(grant["user_id"] == user.id for grant in document.get("accessible_by", [])):
                await self.metadata.modify(
                    Collections.DOCUMENTS,
                    document["id"],
                    lambda record: {
                        "accessible_by": [g for g in record["accessible_by"] if g["user_id"] != user.id]
                    },
                )

        await self.metadata.delete(Collections.USERS, user.id)
        await self.audit.record(actor.id, "user.delete", "user", user.id)
        logger.info(f"User {user.id} deleted by {actor.id}")

    # -------------------------------------------------------------------------
    # Bootstrap
    # -------------------------------------------------------------------------

    async def bootstrap_admin(self, username: str, email: str, password: str, full_name: str) -> UserResponse | None:
        """
        Create the first admin if there is none yet.

        This is the only way a user comes into being without an admin
        performing the creation.
        """
        if await self.metadata.query(Collections.USERS, {"role": Role.ADMIN}, limit=1):
            return None
        data = UserCreate(username=username, email=email, password=password, full_name=full_name, role=Role.ADMIN)
        user = await self._insert_user(data, utc_now())
        await self.audit.record(None, "user.bootstrap_admin", "user", user.id)
        logger.info(f"Bootstrapped admin account {user.username}")
        return UserResponse.from_user(user)
