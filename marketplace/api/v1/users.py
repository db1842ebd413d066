from fastapi import APIRouter, Depends

from marketplace.api.deps import get_principal, get_user_service
from marketplace.core.principal import Principal
from marketplace.schemas.user import PasswordChange, UserResponse, UserUpdate
from marketplace.services.user_service import UserService
from marketplace.utils.response import dump, success

router = APIRouter()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_users(
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    """List all users (admin only)"""
    users = service.list_users(principal)
    return success(data=dump(UserResponse, users), message="Users retrieved", count=len(users))


@router.get("/{user_id}", response_model=dict)
def get_user(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    user = service.get_user(principal, user_id)
    return success(data=dump(UserResponse, user), message="User retrieved")


@router.put("/{user_id}", response_model=dict)
def update_user(
    user_id: int,
    user_update: UserUpdate,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    user = service.update_user(principal, user_id, user_update.model_dump(exclude_unset=True))
    return success(data=dump(UserResponse, user), message="Profile updated successfully")


@router.post("/{user_id}/change-password", response_model=dict)
def change_password(
    user_id: int,
    payload: PasswordChange,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    service.change_password(principal, user_id, payload.old_password, payload.new_password)
    return success(message="Password changed successfully")


@router.patch("/{user_id}/deactivate", response_model=dict)
def deactivate_user(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    user = service.set_active(principal, user_id, False)
    return success(data=dump(UserResponse, user), message="User deactivated")


@router.patch("/{user_id}/activate", response_model=dict)
def activate_user(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    user = service.set_active(principal, user_id, True)
    return success(data=dump(UserResponse, user), message="User activated")


@router.delete("/{user_id}", response_model=dict)
def delete_user(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: UserService = Depends(get_user_service),
):
    service.delete_user(principal, user_id)
    return success(message="User deleted successfully")
