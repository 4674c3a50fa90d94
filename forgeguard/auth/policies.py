"""
Policies - the authorization decision engine.

Two layers:
- Role gate (capabilities.py): is the subject's role allowed to attempt
  the operation at all? Checked before any resource is loaded.
- Resource gate (this module): given the loaded resource, may THIS subject
  act on it? Decided from ownership and assignment fields only.

Every `can_*` function is pure and total: no I/O, no exceptions, and the
same inputs always give the same verdict. Admin bypass is applied once,
by `admin_override`, instead of being repeated inside each rule.

Route handlers get the subject through FastAPI dependencies:
    subject: SubjectContext = Depends(get_current_subject)
    subject: SubjectContext = Depends(require_role(Role.ADMIN))
"""

from __future__ import annotations

from functools import wraps
from typing import Callable, Protocol

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from forgeguard.auth.capabilities import ROUTE_ROLES, Operation, enforce, role_gate
from forgeguard.auth.context import SubjectContext, resolve_subject
from forgeguard.auth.jwt import TokenKind, verify_token
from forgeguard.core.models import Document, MessageType, Project, Role
from forgeguard.errors import AuthenticationError
from forgeguard.integrations.sentry import set_user
from forgeguard.storage.base import StorageProvider


class Subject(Protocol):
    """Anything carrying an id and a role (SubjectContext, User)."""

    id: str
    role: Role


# =============================================================================
# Admin Override
# =============================================================================


def admin_override(rule: Callable[..., bool]) -> Callable[..., bool]:
    """
    Wrap a resource rule so that admins are always allowed.

    The wrapped rule only has to describe the non-admin case.
    """

    @wraps(rule)
    def check(subject: Subject, *args, **kwargs) -> bool:
        if subject.role == Role.ADMIN:
            return True
        return bool(rule(subject, *args, **kwargs))

    return check


def _leads(subject: Subject, project: Project) -> bool:
    return subject.role == Role.PROJECT_LEAD and project.is_owned_or_led_by(subject.id)


# =============================================================================
# Projects
# =============================================================================


@admin_override
def can_read_project(subject: Subject, project: Project) -> bool:
    if subject.role == Role.PROJECT_LEAD:
        return project.is_owned_or_led_by(subject.id)
    if subject.role == Role.DEVELOPER:
        return subject.id in project.assigned_developers
    return False


@admin_override
def can_modify_project(subject: Subject, project: Project) -> bool:
    """Update fields, reassign the lead or the developer set."""
    return _leads(subject, project)


@admin_override
def can_delete_project(subject: Subject, project: Project) -> bool:
    return False


# =============================================================================
# Documents
# =============================================================================


@admin_override
def can_manage_documents(subject: Subject, project: Project) -> bool:
    """Upload to the project, or replace a document's classification and access list."""
    return _leads(subject, project)


@admin_override
def can_view_all_documents(subject: Subject, project: Project) -> bool:
    return _leads(subject, project)


@admin_override
def can_read_document(subject: Subject, document: Document) -> bool:
    """View or download. Access is the stored list, not current project membership."""
    return document.grants_access_to(subject.id)


@admin_override
def can_delete_document(subject: Subject, document: Document, project: Project) -> bool:
    if document.uploaded_by == subject.id:
        return True
    return _leads(subject, project)


# =============================================================================
# Messages
# =============================================================================


def can_send_message(subject: Subject, project: Project, message_type: MessageType | str = MessageType.MESSAGE) -> bool:
    """
    Post to a project's message board.

    Plain messages need read access to the project. Completion requests
    come only from developers (assigned ones, by the same read rule).
    Review outcomes are never sent directly.
    """
    try:
        message_type = MessageType(message_type)
    except ValueError:
        return False

    if message_type == MessageType.COMPLETION_REQUEST:
        return subject.role == Role.DEVELOPER and can_read_project(subject, project)
    if message_type == MessageType.MESSAGE:
        return can_read_project(subject, project)
    return False


@admin_override
def can_review_completion(subject: Subject, project: Project) -> bool:
    return _leads(subject, project)


# =============================================================================
# Users
# =============================================================================

SELF_PROTECTED_OPERATIONS = frozenset({Operation.USER_DELETE, Operation.USER_DEACTIVATE})


def can_manage_user(
    subject: Subject,
    target_id: str,
    operation: Operation,
    changes_role: bool = False,
) -> bool:
    """
    Admin-only user management.

    Admins may not delete, deactivate or change the role of their own
    account. This rule applies to admins too, so it is not wrapped by
    `admin_override`.
    """
    if subject.role != Role.ADMIN:
        return False
    if subject.id == target_id and (operation in SELF_PROTECTED_OPERATIONS or changes_role):
        return False
    return True


# =============================================================================
# List Filters
# =============================================================================
#
# A filter is None when the subject sees everything, otherwise a predicate
# to apply to each candidate resource.

ProjectFilter = Callable[[Project], bool]
DocumentFilter = Callable[[Document], bool]


def project_list_filter(subject: Subject) -> ProjectFilter | None:
    if subject.role == Role.ADMIN:
        return None
    if subject.role == Role.PROJECT_LEAD:
        return lambda project: project.is_owned_or_led_by(subject.id)
    if subject.role == Role.DEVELOPER:
        return lambda project: subject.id in project.assigned_developers
    return lambda project: False


def document_list_filter(subject: Subject, project: Project) -> DocumentFilter | None:
    if can_view_all_documents(subject, project):
        return None
    return lambda document: document.grants_access_to(subject.id)


def completion_request_filter(subject: Subject) -> ProjectFilter | None:
    """Which projects' pending completion requests the subject may review."""
    if subject.role == Role.ADMIN:
        return None
    return lambda project: can_review_completion(subject, project)


# =============================================================================
# FastAPI Dependencies
# =============================================================================


# Doesn't fail on its own when the header is missing; we raise our own 401
bearer = HTTPBearer(auto_error=False)


def get_storage(request: Request) -> StorageProvider:
    return request.app.state.storage


async def get_current_subject(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> SubjectContext:
    """Verify the bearer access token and resolve it to a live subject."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    claims = verify_token(credentials.credentials, TokenKind.ACCESS)
    subject = await resolve_subject(claims, get_storage(request).metadata)
    set_user(subject.id, subject.role.value)
    return subject


def require_role(*roles: Role) -> Callable:
    """
    Require the subject to hold one of `roles`.

    Usage:
        @router.delete("/{project_id}")
        async def delete_project(subject: SubjectContext = Depends(require_role(Role.ADMIN))):
            ...
    """

    async def dependency(subject: SubjectContext = Depends(get_current_subject)) -> SubjectContext:
        enforce(role_gate(subject.role, roles))
        return subject

    return dependency


def require_operation(operation: Operation) -> Callable:
    """Role gate for a named operation (see ROUTE_ROLES)."""
    return require_role(*ROUTE_ROLES[operation])
