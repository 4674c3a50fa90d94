"""
Authentication and authorization.

- credentials:  password hashing
- lockout:      per-account failed-login lock
- jwt:          access/refresh token issue and verification
- context:      token claims -> live subject
- capabilities: role gate per operation
- policies:     resource gate, list filters, FastAPI dependencies

The HTTP routes live in `forgeguard.auth.routes` and are not imported
here.
"""

from forgeguard.auth.capabilities import (
    ROUTE_ROLES,
    Decision,
    Operation,
    enforce,
    operation_gate,
    role_gate,
)
from forgeguard.auth.context import SubjectContext, resolve_subject
from forgeguard.auth.credentials import hash_password, verify_password
from forgeguard.auth.jwt import (
    TokenClaims,
    TokenKind,
    TokenPair,
    issue_access_token,
    issue_refresh_token,
    issue_token_pair,
    verify_token,
)
from forgeguard.auth.policies import (
    admin_override,
    can_delete_document,
    can_delete_project,
    can_manage_documents,
    can_manage_user,
    can_modify_project,
    can_read_document,
    can_read_project,
    can_review_completion,
    can_send_message,
    can_view_all_documents,
    completion_request_filter,
    document_list_filter,
    get_current_subject,
    project_list_filter,
    require_operation,
    require_role,
)

__all__ = [
    # Role gate
    "ROUTE_ROLES",
    "Decision",
    "Operation",
    "enforce",
    "operation_gate",
    "role_gate",
    # Resource gate
    "admin_override",
    "can_delete_document",
    "can_delete_project",
    "can_manage_documents",
    "can_manage_user",
    "can_modify_project",
    "can_read_document",
    "can_read_project",
    "can_review_completion",
    "can_send_message",
    "can_view_all_documents",
    "completion_request_filter",
    "document_list_filter",
    "project_list_filter",
    # FastAPI
    "get_current_subject",
    "require_operation",
    "require_role",
    # Subject + tokens
    "SubjectContext",
    "resolve_subject",
    "TokenClaims",
    "TokenKind",
    "TokenPair",
    "issue_access_token",
    "issue_refresh_token",
    "issue_token_pair",
    "verify_token",
    # Credentials
    "hash_password",
    "verify_password",
]
