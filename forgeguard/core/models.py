"""
Core data models.

These models represent the fundamental entities: Users, Projects,
Documents and Messages. All relations point from a resource toward
users by id; users hold no back-references.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from forgeguard.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """The single platform-wide role a user holds."""

    ADMIN = "admin"
    PROJECT_LEAD = "project-lead"
    DEVELOPER = "developer"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


class ProjectPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Classification(str, Enum):
    """Sensitivity label of an uploaded document."""

    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    SECRET = "secret"


class MessageType(str, Enum):
    MESSAGE = "message"
    COMPLETION_REQUEST = "completion-request"
    COMPLETION_APPROVED = "completion-approved"
    COMPLETION_REJECTED = "completion-rejected"


class AccessAction(str, Enum):
    VIEWED = "viewed"
    DOWNLOADED = "downloaded"


# =============================================================================
# User
# =============================================================================


class User(BaseModel):
    """
    A subject that can authenticate.

    `password_hash` and the lockout counters are internal; use
    `UserResponse` for anything leaving the process.
    """

    id: str = Field(default_factory=lambda: generate_id("user"))

    username: str
    email: str
    full_name: str
    role: Role = Role.DEVELOPER

    # Credentials
    password_hash: str
    credential_changed_at: datetime = Field(default_factory=utc_now)

    # Account state
    is_active: bool = True
    failed_attempts: int = 0
    locked_until: datetime | None = None
    last_login: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class UserResponse(BaseModel):
    """User data returned to clients (no sensitive fields)."""

    id: str
    username: str
    email: str
    full_name: str
    role: Role
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )


# =============================================================================
# Project
# =============================================================================


class Project(BaseModel):
    """
    A project - the top-level container for documents and messages.

    `created_by` never changes after creation. `project_lead` must hold
    the admin or project-lead role and every id in `assigned_developers`
    must belong to a developer; both are checked by the project service
    when they are assigned.
    """

    id: str = Field(default_factory=lambda: generate_id("proj"))

    name: str
    description: str = ""
    deadline: datetime | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM

    # Ownership
    created_by: str
    project_lead: str | None = None
    assigned_developers: list[str] = Field(default_factory=list)
    last_modified_by: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_owned_or_led_by(self, user_id: str) -> bool:
        return user_id in (self.created_by, self.project_lead)


# =============================================================================
# Document
# =============================================================================


class AccessGrant(BaseModel):
    """Explicit permission for one user to read a document."""

    user_id: str
    role: Role  # role at grant time


class AccessLogEntry(BaseModel):
    """Immutable record of a document view or download."""

    model_config = {"frozen": True}

    user_id: str
    action: AccessAction
    accessed_at: datetime = Field(default_factory=utc_now)


class Document(BaseModel):
    """
    Metadata for an uploaded file.

    `accessible_by` is a snapshot taken at upload time; later changes to
    the project's team do not change it. Admins are never listed.
    """

    id: str = Field(default_factory=lambda: generate_id("doc"))

    stored_name: str
    original_name: str
    size: int
    content_type: str
    checksum: str
    classification: Classification = Classification.INTERNAL
    storage_key: str

    project_id: str
    uploaded_by: str
    accessible_by: list[AccessGrant] = Field(default_factory=list)
    access_log: list[AccessLogEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def grants_access_to(self, user_id: str) -> bool:
        return any(grant.user_id == user_id for grant in self.accessible_by)


class DocumentResponse(BaseModel):
    """Document metadata returned to clients (no storage key or checksum)."""

    id: str
    stored_name: str
    original_name: str
    size: int
    content_type: str
    classification: Classification
    project_id: str
    uploaded_by: str
    accessible_by: list[AccessGrant]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(**document.model_dump(exclude={"storage_key", "checksum", "access_log"}))


# =============================================================================
# Message
# =============================================================================


class Message(BaseModel):
    """
    A project message or completion-request.

    A completion-request is reviewed exactly once; the review changes its
    type to completion-approved or completion-rejected.
    """

    id: str = Field(default_factory=lambda: generate_id("msg"))

    project_id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.MESSAGE

    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_response: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_pending_request(self) -> bool:
        return self.type == MessageType.COMPLETION_REQUEST and self.reviewed_by is None


def to_record(model: BaseModel) -> dict[str, Any]:
    """Serialize a model for MetadataStorage."""
    return model.model_dump(mode="python")
