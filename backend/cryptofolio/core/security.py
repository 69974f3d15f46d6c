"""
Token signing and password hashing.

Tokens are HS256 JWTs carried in an httpOnly cookie; passwords are bcrypt hashes.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AuthenticationError, DomainValidationError

# bcrypt only looks at the first 72 bytes and bcrypt 5 rejects anything longer
MAX_PASSWORD_BYTES = 72


def sign(payload: Dict[str, Any], secret: Optional[str] = None,
         ttl: Optional[timedelta] = None) -> str:
    """Sign a payload into a token that expires after ``ttl``."""
    secret = secret or settings.SECRET_KEY
    ttl = ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.now(timezone.utc)
    claims = {**payload, "iat": now, "exp": now + ttl}
    return jwt.encode(claims, secret, algorithm=settings.ALGORITHM)


def verify(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Decode and validate a token.

    Raises:
        AuthenticationError: token is malformed, tampered with, or expired
    """
    secret = secret or settings.SECRET_KEY
    try:
        return jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except JWTError as e:
        raise AuthenticationError("Invalid token") from e


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise DomainValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
