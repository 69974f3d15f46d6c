"""
Auth API Router.

Login sets the token as an httpOnly cookie; it is also returned in the body
for clients that send it as a Bearer header.
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from cryptofolio.api.deps import get_auth_service, get_current_user
from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AuthenticationError
from cryptofolio.core.security import MAX_PASSWORD_BYTES
from cryptofolio.models.user import User
from cryptofolio.services.auth_service import AuthService

router = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8, max_length=MAX_PASSWORD_BYTES)
    full_name: str = Field(min_length=1, max_length=100)


class UserSchema(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    is_active: bool

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserSchema


@router.post("/register", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Sign up as a USER. 409 if the email is taken, 403 when registration is off."""
    return await auth.register(payload.email, payload.password, payload.full_name)


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    try:
        user, token = await auth.login(payload.email, payload.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
    )
    return LoginResponse(access_token=token, user=UserSchema.model_validate(user))


@router.post("/logout")
async def logout(response: Response) -> dict[str, str]:
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=UserSchema)
async def me(user: User = Depends(get_current_user)):
    return user
