# =============================================================================
# Session Token Issuer / Verifier
# =============================================================================
#
# Two structurally identical JWTs, signed with independent secrets:
#   - access:  sub + role, minutes-scale lifetime
#   - refresh: sub only,   days-scale lifetime
#
# Claims: sub, role (access only), iat, exp, iss, aud, type, jti
#
# `iat` is written as float seconds so that a token issued in the same
# second as a credential change can still be ordered against it.
#
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import jwt
from pydantic import BaseModel

from forgeguard.config import Settings, get_settings
from forgeguard.core.models import Role
from forgeguard.core.utils import generate_id, utc_now
from forgeguard.errors import (
    TokenExpiredError,
    TokenInvalidError,
    TokenMalformedError,
    TokenSignatureError,
)

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "iat", "exp", "iss", "aud", "type", "jti"]


# =============================================================================
# Models
# =============================================================================


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Verified JWT claims."""

    sub: str  # user_id
    role: Role | None = None  # access tokens only
    iat: datetime
    exp: datetime
    iss: str
    aud: str
    type: TokenKind
    jti: str  # unique token ID


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


class AccessToken(BaseModel):
    """A lone access token, as returned by the refresh flow."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


def _secret_for(kind: TokenKind, settings: Settings) -> str:
    if kind == TokenKind.ACCESS:
        return settings.jwt_access_secret
    return settings.jwt_refresh_secret


# =============================================================================
# Token Creation
# =============================================================================


def _encode(kind: TokenKind, subject_id: str, lifetime: timedelta, now: datetime, extra: dict[str, Any]) -> str:
    settings = get_settings()
    payload = {
        "sub": subject_id,
        "iat": now.timestamp(),
        "exp": int((now + lifetime).timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "type": kind.value,
        "jti": generate_id("tok" if kind == TokenKind.ACCESS else "rtok"),
        **extra,
    }
    return jwt.encode(payload, _secret_for(kind, settings), algorithm=settings.jwt_algorithm)


def issue_access_token(subject_id: str, role: Role | str, now: datetime | None = None) -> str:
    """Create a short-lived access token carrying the subject's role."""
    settings = get_settings()
    return _encode(
        TokenKind.ACCESS,
        subject_id,
        timedelta(minutes=settings.jwt_access_token_expire_minutes),
        now or utc_now(),
        {"role": Role(role).value},
    )


def issue_refresh_token(subject_id: str, now: datetime | None = None) -> str:
    """Create a longer-lived refresh token (no role claim)."""
    settings = get_settings()
    return _encode(
        TokenKind.REFRESH,
        subject_id,
        timedelta(days=settings.jwt_refresh_token_expire_days),
        now or utc_now(),
        {},
    )


def access_token_lifetime_seconds() -> int:
    return get_settings().jwt_access_token_expire_minutes * 60


def issue_token_pair(subject_id: str, role: Role | str, now: datetime | None = None) -> TokenPair:
    """Create both access and refresh tokens."""
    return TokenPair(
        access_token=issue_access_token(subject_id, role, now),
        refresh_token=issue_refresh_token(subject_id, now),
        expires_in=access_token_lifetime_seconds(),
    )


# =============================================================================
# Token Validation
# =============================================================================


def verify_token(token: str, kind: TokenKind | str = TokenKind.ACCESS, now: datetime | None = None) -> TokenClaims:
    """
    Decode and validate a JWT.

    Checks signature (with the secret of `kind`), issuer, audience, token
    type and expiry. Expiry and issued-at are compared against `now` with
    `Settings.jwt_leeway_seconds` of clock-skew tolerance.

    Raises:
        TokenExpiredError: token is past its expiry
        TokenSignatureError: signature does not verify
        TokenMalformedError: token cannot be decoded
        TokenInvalidError: claims are missing or of the wrong kind
    """
    settings = get_settings()
    kind = TokenKind(kind)
    now = now or utc_now()
    leeway = settings.jwt_leeway_seconds

    try:
        payload = jwt.decode(
            token,
            _secret_for(kind, settings),
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={
                "require": REQUIRED_CLAIMS,
                "verify_exp": False,  # checked below against `now`
                "verify_iat": False,
            },
        )
    except jwt.InvalidSignatureError:
        raise TokenSignatureError()
    except jwt.DecodeError:
        raise TokenMalformedError()
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected {kind.value} token: {type(e).__name__}")
        raise TokenInvalidError()

    if payload.get("type") != kind.value:
        raise TokenInvalidError()

    try:
        issued_at = datetime.fromtimestamp(float(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(float(payload["exp"]), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        raise TokenInvalidError()

    if expires_at <= now - timedelta(seconds=leeway):
        raise TokenExpiredError()
    if issued_at > now + timedelta(seconds=leeway):
        raise TokenInvalidError()

    if kind == TokenKind.ACCESS and payload.get("role") not in {role.value for role in Role}:
        raise TokenInvalidError()

    return TokenClaims(
        sub=str(payload["sub"]),
        role=payload.get("role") if kind == TokenKind.ACCESS else None,
        iat=issued_at,
        exp=expires_at,
        iss=payload["iss"],
        aud=payload["aud"] if isinstance(payload["aud"], str) else settings.jwt_audience,
        type=kind,
        jti=str(payload["jti"]),
    )
