"""
User management routes. Admin only, except the assignable-developer list.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from forgeguard.api.deps import get_services
from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import require_operation
from forgeguard.core.models import Role, UserResponse
from forgeguard.services import Services
from forgeguard.services.users import PasswordReset, UserCreate, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: Role | None = None,
    is_active: bool | None = None,
    subject: SubjectContext = Depends(require_operation(Operation.USER_LIST)),
    services: Services = Depends(get_services),
):
    return await services.users.list_users(subject, role=role, is_active=is_active)


# Declared before /{user_id} so "assignable" is not taken for an id
@router.get("/assignable", response_model=list[UserResponse])
async def list_assignable(
    subject: SubjectContext = Depends(require_operation(Operation.USER_LIST_ASSIGNABLE)),
    services: Services = Depends(get_services),
):
    return await services.users.list_assignable(subject)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    subject: SubjectContext = Depends(require_operation(Operation.USER_READ)),
    services: Services = Depends(get_services),
):
    return await services.users.get_user(subject, user_id)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    subject: SubjectContext = Depends(require_operation(Operation.USER_CREATE)),
    services: Services = Depends(get_services),
):
    return await services.users.create_user(subject, data)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    subject: SubjectContext = Depends(require_operation(Operation.USER_UPDATE)),
    services: Services = Depends(get_services),
):
    return await services.users.update_user(subject, user_id, data)


@router.patch("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: str,
    subject: SubjectContext = Depends(require_operation(Operation.USER_DEACTIVATE)),
    services: Services = Depends(get_services),
):
    return await services.users.deactivate_user(subject, user_id)


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    data: PasswordReset,
    subject: SubjectContext = Depends(require_operation(Operation.USER_RESET_PASSWORD)),
    services: Services = Depends(get_services),
):
    await services.users.reset_password(subject, user_id, data.new_password)
    return {"message": "Password reset successfully"}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    subject: SubjectContext = Depends(require_operation(Operation.USER_DELETE)),
    services: Services = Depends(get_services),
):
    await services.users.delete_user(subject, user_id)
    return {"message": "User deleted successfully"}
