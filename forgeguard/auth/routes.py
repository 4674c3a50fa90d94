# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/login            - Get tokens (throttled per IP + username)
#   POST /auth/refresh-token    - New access token from a refresh token
#   POST /auth/logout           - Client discards tokens
#   GET  /auth/me               - Current user
#   PUT  /auth/change-password  - Change own password, get new tokens
#
# There is no self-registration: accounts are created by an admin
# through /users.
#
# =============================================================================

from fastapi import APIRouter, Depends, Request

from forgeguard.api.deps import client_ip, get_services
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.jwt import AccessToken, TokenPair
from forgeguard.auth.policies import get_current_subject
from forgeguard.core.models import UserResponse
from forgeguard.services import Services
from forgeguard.services.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Public Endpoints
# =============================================================================


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, request: Request, services: Services = Depends(get_services)):
    """
    Authenticate and get tokens.

    Every failure other than a lock answers "Invalid credentials".
    """
    request.app.state.login_throttle.hit(client_ip(request), data.username)
    return await services.auth.login(data.username, data.password)


@router.post("/refresh-token", response_model=AccessToken)
async def refresh_token(data: RefreshRequest, services: Services = Depends(get_services)):
    """
    Use a refresh token to get a new access token.

    The refresh token stays valid until it expires.
    """
    return await services.auth.refresh(data.refresh_token)


# =============================================================================
# Protected Endpoints
# =============================================================================


@router.post("/logout")
async def logout(subject: SubjectContext = Depends(get_current_subject)):
    """
    Logout (client should discard tokens).

    Tokens are not revoked server-side; they stop working when they expire
    or when the password changes.
    """
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse)
async def me(
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.auth.current_user(subject)


@router.put("/change-password", response_model=TokenPair)
async def change_password(
    data: ChangePasswordRequest,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    """
    Change the current user's password.

    All previously issued tokens stop working; use the returned pair.
    """
    return await services.auth.change_password(
        subject, data.old_password, data.new_password, data.confirm_password
    )
