"""
Resource services.

Each service applies the authorization engine around one kind of
resource. `Services.create()` builds them all over one storage provider
and one audit log.
"""

from __future__ import annotations

from dataclasses import dataclass

from forgeguard.core.audit import AuditLog
from forgeguard.services.auth import AuthService
from forgeguard.services.documents import DocumentService
from forgeguard.services.messages import MessageService
from forgeguard.services.projects import ProjectService
from forgeguard.services.users import UserService
from forgeguard.storage.base import StorageProvider


@dataclass
class Services:
    storage: StorageProvider
    audit: AuditLog
    auth: AuthService
    users: UserService
    projects: ProjectService
    documents: DocumentService
    messages: MessageService

    @classmethod
    def create(cls, storage: StorageProvider, audit: AuditLog | None = None) -> Services:
        audit = audit or AuditLog(storage.metadata)
        return cls(
            storage=storage,
            audit=audit,
            auth=AuthService(storage, audit),
            users=UserService(storage, audit),
            projects=ProjectService(storage, audit),
            documents=DocumentService(storage, audit),
            messages=MessageService(storage, audit),
        )


__all__ = [
    "Services",
    "AuthService",
    "UserService",
    "ProjectService",
    "DocumentService",
    "MessageService",
]
