"""
Subject context - the "who" for each request.

This is the lightweight object passed to route handlers and services.
It is built from a verified access token and the live user record,
and never carries the password hash.
"""

from __future__ import annotations

from dataclasses import dataclass

from forgeguard.auth.jwt import TokenClaims
from forgeguard.core.models import Role, User
from forgeguard.core.utils import ensure_utc
from forgeguard.errors import (
    StaleCredentialError,
    SubjectInactiveError,
    SubjectNotFoundError,
)
from forgeguard.storage.base import Collections, MetadataStorage


@dataclass(frozen=True)
class SubjectContext:
    """
    The authenticated subject of a request.

    Usage in routes:
        async def my_route(subject: SubjectContext = Depends(get_current_subject)):
            print(f"User {subject.id} acting as {subject.role.value}")
    """

    id: str
    role: Role
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_project_lead(self) -> bool:
        return self.role == Role.PROJECT_LEAD

    @property
    def is_developer(self) -> bool:
        return self.role == Role.DEVELOPER

    @classmethod
    def from_user(cls, user: User) -> SubjectContext:
        return cls(id=user.id, role=user.role, email=user.email)


# =============================================================================
# Subject Resolution
# =============================================================================


def check_subject(user: User | None, claims: TokenClaims) -> User:
    """
    Check that a loaded user is still a valid holder of `claims`.

    Raises:
        SubjectNotFoundError: no such user
        SubjectInactiveError: user deactivated
        StaleCredentialError: password changed after the token was issued,
            or the role in an access token no longer matches
    """
    if user is None:
        raise SubjectNotFoundError()
    if not user.is_active:
        raise SubjectInactiveError()
    if ensure_utc(user.credential_changed_at) > claims.iat:
        raise StaleCredentialError()
    if claims.role is not None and claims.role != user.role:
        raise StaleCredentialError()
    return user


async def load_subject_user(claims: TokenClaims, metadata: MetadataStorage) -> User:
    """Load and check the user named by `claims`."""
    record = await metadata.get(Collections.USERS, claims.sub)
    user = User.model_validate(record) if record is not None else None
    return check_subject(user, claims)


async def resolve_subject(claims: TokenClaims, metadata: MetadataStorage) -> SubjectContext:
    """Map verified access-token claims to a live subject."""
    user = await load_subject_user(claims, metadata)
    return SubjectContext.from_user(user)
