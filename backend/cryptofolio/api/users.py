"""
Users API Router (admin only).
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from cryptofolio.api.auth import UserSchema
from cryptofolio.api.deps import get_auth_service, require_admin
from cryptofolio.core.security import MAX_PASSWORD_BYTES
from cryptofolio.models.user import User
from cryptofolio.services.auth_service import AuthService

router = APIRouter()


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8, max_length=MAX_PASSWORD_BYTES)
    full_name: str = Field(min_length=1, max_length=100)
    role: Literal["ADMIN", "USER"] = "USER"


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    password: Optional[str] = Field(default=None, min_length=8, max_length=MAX_PASSWORD_BYTES)
    role: Optional[Literal["ADMIN", "USER"]] = None
    is_active: Optional[bool] = None


@router.post("", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    auth: AuthService = Depends(get_auth_service),
    _admin=Depends(require_admin),
):
    """Create a user. 409 if the email is taken."""
    return await auth.create_user(payload.email, payload.password, payload.full_name, payload.role)


@router.get("", response_model=list[UserSchema])
async def list_users(
    auth: AuthService = Depends(get_auth_service),
    _admin=Depends(require_admin),
):
    return await auth.list_users()


@router.get("/{user_id}", response_model=UserSchema)
async def get_user(
    user_id: int,
    auth: AuthService = Depends(get_auth_service),
    _admin=Depends(require_admin),
):
    return await auth.get_user(user_id)


@router.put("/{user_id}", response_model=UserSchema)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    auth: AuthService = Depends(get_auth_service),
    _admin=Depends(require_admin),
):
    return await auth.update_user(user_id, **payload.model_dump(exclude_none=True))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    auth: AuthService = Depends(get_auth_service),
    admin: User = Depends(require_admin),
):
    """Delete a user. Admins cannot delete their own account."""
    if admin.id == user_id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    await auth.delete_user(user_id)
