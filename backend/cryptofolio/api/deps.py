"""
Shared API dependencies: service instances and the auth guard.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AuthenticationError
from cryptofolio.models.user import User
from cryptofolio.services.allocation_ledger import AllocationLedger
from cryptofolio.services.auth_service import AuthService
from cryptofolio.services.portfolio_service import PortfolioService

_portfolio_service: Optional[PortfolioService] = None


def get_portfolio_service() -> PortfolioService:
    global _portfolio_service
    if _portfolio_service is None:
        _portfolio_service = PortfolioService()
    return _portfolio_service


def get_ledger(
    service: PortfolioService = Depends(get_portfolio_service),
) -> AllocationLedger:
    return service.ledger


def get_auth_service() -> AuthService:
    return AuthService()


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def get_current_user(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the user from the auth cookie, falling back to a Bearer header."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access")
    try:
        return await auth.get_user_by_token(token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def require_roles(*roles: str):
    """Dependency factory allowing only users whose role is in ``roles``."""

    async def guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized user")
        return user

    return guard


require_admin = require_roles("ADMIN")
