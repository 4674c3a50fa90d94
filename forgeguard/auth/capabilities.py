"""
Roles and route-level operations.

This defines WHO may attempt an operation at all, independent of which
resource is targeted. Resource-specific rules live in policies.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from forgeguard.core.models import Role
from forgeguard.errors import AuthorizationError, DenialReason


class Operation(str, Enum):
    """Operations with a fixed role requirement."""

    # User management
    USER_LIST = "user.list"
    USER_READ = "user.read"
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"
    USER_DEACTIVATE = "user.deactivate"
    USER_RESET_PASSWORD = "user.reset_password"
    USER_LIST_ASSIGNABLE = "user.list_assignable"

    # Projects
    PROJECT_CREATE = "project.create"
    PROJECT_UPDATE = "project.update"
    PROJECT_DELETE = "project.delete"

    # Documents
    DOCUMENT_UPLOAD = "document.upload"
    DOCUMENT_UPDATE = "document.update"

    # Completion workflow
    COMPLETION_REQUEST = "completion.request"
    COMPLETION_REVIEW = "completion.review"
    COMPLETION_LIST_PENDING = "completion.list_pending"


ADMIN_ONLY = frozenset({Role.ADMIN})
MANAGERS = frozenset({Role.ADMIN, Role.PROJECT_LEAD})
DEVELOPERS = frozenset({Role.DEVELOPER})

# Roles allowed to attempt each operation
ROUTE_ROLES: dict[Operation, frozenset[Role]] = {
    Operation.USER_LIST: ADMIN_ONLY,
    Operation.USER_READ: ADMIN_ONLY,
    Operation.USER_CREATE: ADMIN_ONLY,
    Operation.USER_UPDATE: ADMIN_ONLY,
    Operation.USER_DELETE: ADMIN_ONLY,
    Operation.USER_DEACTIVATE: ADMIN_ONLY,
    Operation.USER_RESET_PASSWORD: ADMIN_ONLY,
    Operation.USER_LIST_ASSIGNABLE: MANAGERS,
    Operation.PROJECT_CREATE: MANAGERS,
    Operation.PROJECT_UPDATE: MANAGERS,
    Operation.PROJECT_DELETE: ADMIN_ONLY,
    Operation.DOCUMENT_UPLOAD: MANAGERS,
    Operation.DOCUMENT_UPDATE: MANAGERS,
    Operation.COMPLETION_REQUEST: DEVELOPERS,
    Operation.COMPLETION_REVIEW: MANAGERS,
    Operation.COMPLETION_LIST_PENDING: MANAGERS,
}

# Project lead may be an admin or a project-lead
PROJECT_LEAD_ROLES = MANAGERS


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check."""

    allowed: bool
    reason: DenialReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(True)

    @classmethod
    def deny(cls, reason: DenialReason, message: str) -> Decision:
        return cls(False, reason, message)

    def __bool__(self) -> bool:
        return self.allowed


def role_gate(role: Role | str, allowed_roles: Iterable[Role | str]) -> Decision:
    """Is `role` one of `allowed_roles`? Never raises."""
    try:
        role = Role(role)
        allowed = {Role(r) for r in allowed_roles}
    except ValueError:
        return Decision.deny(DenialReason.INSUFFICIENT_ROLE, "Access denied")
    if role in allowed:
        return Decision.allow()
    required = ", ".join(sorted(r.value for r in allowed))
    return Decision.deny(DenialReason.INSUFFICIENT_ROLE, f"Access denied. Required roles: {required}")


def operation_gate(role: Role | str, operation: Operation) -> Decision:
    """Role gate for a named operation."""
    return role_gate(role, ROUTE_ROLES[operation])


def enforce(decision: Decision, message: str | None = None) -> None:
    """Raise AuthorizationError for a denied decision."""
    if not decision.allowed:
        raise AuthorizationError(message or decision.message, reason=decision.reason or DenialReason.NOT_PERMITTED)
