import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cryptofolio.core import security
from cryptofolio.core.config import settings
from cryptofolio.core.database import AsyncSessionLocal
from cryptofolio.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DomainValidationError,
    NotFoundError,
)
from cryptofolio.models.user import User

logger = logging.getLogger(__name__)

ROLES = ("ADMIN", "USER")


class AuthService:
    """Credential checks and user accounts."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory

    def _session(self) -> AsyncSession:
        return (self.session_factory or AsyncSessionLocal)()

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """
        Check credentials and issue a token.

        Raises:
            AuthenticationError: unknown email, wrong password, or inactive user
        """
        async with self._session() as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            user = result.scalar_one_or_none()

        if user is None or not security.check_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("User is inactive")

        token = security.sign({"sub": str(user.id), "email": user.email, "role": user.role})
        return user, token

    async def get_user_by_token(self, token: str) -> User:
        """
        Raises:
            AuthenticationError: invalid token, or the user no longer exists or is inactive
        """
        payload = security.verify(token)
        try:
            user_id = int(payload["sub"])
        except (KeyError, ValueError) as e:
            raise AuthenticationError("Invalid token") from e

        async with self._session() as session:
            user = await session.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Unauthorized access")
        return user

    async def create_user(
        self, email: str, password: str, full_name: str, role: str = "USER"
    ) -> User:
        if role not in ROLES:
            raise DomainValidationError(f"Unknown role: {role}")

        user = User(
            email=email.lower(),
            full_name=full_name,
            password_hash=security.hash_password(password),
            role=role,
            is_active=True,
        )
        async with self._session() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DomainValidationError(
                    f"User with email {email} already exists", conflict=True
                ) from e
            await session.refresh(user)
        logger.info("Created %s user %s", role, user.email)
        return user

    async def list_users(self) -> List[User]:
        async with self._session() as session:
            result = await session.execute(select(User).order_by(User.id.asc()))
            return list(result.scalars().all())

    async def register(self, email: str, password: str, full_name: str) -> User:
        """
        Self-service sign up. Registered accounts are always plain users.

        Raises:
            AuthorizationError: registration is switched off
        """
        if not settings.REGISTRATION_ENABLED:
            raise AuthorizationError("Registration is disabled")
        return await self.create_user(email, password, full_name, role="USER")

    async def get_user(self, user_id: int) -> User:
        async with self._session() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", resource="user")
        return user

    async def update_user(
        self,
        user_id: int,
        full_name: Optional[str] = None,
        password: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        """Change the given fields; omitted fields keep their value."""
        if role is not None and role not in ROLES:
            raise DomainValidationError(f"Unknown role: {role}")

        async with self._session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", resource="user")

            if full_name is not None:
                user.full_name = full_name
            if password is not None:
                user.password_hash = security.hash_password(password)
            if role is not None:
                user.role = role
            if is_active is not None:
                user.is_active = is_active

            await session.commit()
            await session.refresh(user)
        logger.info("Updated user %s", user.email)
        return user

    async def delete_user(self, user_id: int) -> None:
        async with self._session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", resource="user")
            email = user.email
            await session.delete(user)
            await session.commit()
        logger.info("Deleted user %s", email)

    async def ensure_super_admin(self) -> Optional[User]:
        """Create the configured super admin on first start."""
        if not settings.SUPER_ADMIN_EMAIL or not settings.SUPER_ADMIN_PASSWORD:
            return None

        async with self._session() as session:
            result = await session.execute(
                select(User).where(User.email == settings.SUPER_ADMIN_EMAIL.lower())
            )
            existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        return await self.create_user(
            settings.SUPER_ADMIN_EMAIL,
            settings.SUPER_ADMIN_PASSWORD,
            full_name="Super Admin",
            role="ADMIN",
        )
