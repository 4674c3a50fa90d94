"""
Core domain: models, audit trail, input validation.
"""

from forgeguard.core.models import (
    AccessAction,
    AccessGrant,
    AccessLogEntry,
    Classification,
    Document,
    DocumentResponse,
    Message,
    MessageType,
    Project,
    ProjectPriority,
    ProjectStatus,
    Role,
    User,
    UserResponse,
)
from forgeguard.core.audit import AuditEntry, AuditLog
from forgeguard.core.utils import generate_id, utc_now

__all__ = [
    "AccessAction",
    "AccessGrant",
    "AccessLogEntry",
    "Classification",
    "Document",
    "DocumentResponse",
    "Message",
    "MessageType",
    "Project",
    "ProjectPriority",
    "ProjectStatus",
    "Role",
    "User",
    "UserResponse",
    "AuditEntry",
    "AuditLog",
    "generate_id",
    "utc_now",
]
