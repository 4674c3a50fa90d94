"""
Base class for the resource services.

A service wraps the authorization engine around one kind of resource.
Every public operation follows the same order:

    1. role gate        (capabilities.operation_gate)  -> 403
    2. load resource                                    -> 404
    3. resource gate    (policies.can_*)                -> 403
    4. validate input                                   -> 400 / 409
    5. mutate storage
    6. append an audit entry

Services never return internal records; they return the `*Response`
models from `forgeguard.core.models`.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel

from forgeguard.auth.capabilities import Operation, enforce, operation_gate
from forgeguard.auth.context import SubjectContext
from forgeguard.core.audit import AuditLog
from forgeguard.core.models import Project, User
from forgeguard.errors import AuthorizationError, NotFoundError
from forgeguard.storage.base import Collections, StorageProvider

ModelT = TypeVar("ModelT", bound=BaseModel)


class ResourceService:
    """Shared plumbing: storage access, loading, gating, auditing."""

    def __init__(self, storage: StorageProvider, audit: AuditLog | None = None):
        self.storage = storage
        self.metadata = storage.metadata
        self.content = storage.content
        self.audit = audit or AuditLog(storage.metadata)

    # -------------------------------------------------------------------------
    # Gates
    # -------------------------------------------------------------------------

    @staticmethod
    def gate(subject: SubjectContext, operation: Operation) -> None:
        """Role gate. Raises AuthorizationError."""
        enforce(operation_gate(subject.role, operation))

    @staticmethod
    def check(allowed: bool, message: str) -> None:
        """Resource gate. Raises AuthorizationError naming only the operation."""
        if not allowed:
            raise AuthorizationError(message)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def _load(self, collection: str, id: str, model: type[ModelT], label: str) -> ModelT:
        record = await self.metadata.get(collection, id)
        if record is None:
            raise NotFoundError(f"{label} not found")
        return model.model_validate(record)

    async def _load_all(self, collection: str, model: type[ModelT], **filters: Any) -> list[ModelT]:
        records = await self.metadata.query(collection, filters or None, limit=None)
        return [model.model_validate(record) for record in records]

    async def load_user(self, user_id: str) -> User:
        return await self._load(Collections.USERS, user_id, User, "User")

    async def load_project(self, project_id: str) -> Project:
        return await self._load(Collections.PROJECTS, project_id, Project, "Project")

    async def find_user(self, user_id: str) -> User | None:
        record = await self.metadata.get(Collections.USERS, user_id)
        return User.model_validate(record) if record is not None else None
