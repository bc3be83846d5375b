"""
Password hashing and session tokens.

Tokens are HS256 JWTs carrying the username in the `sub` claim. Routes that
require a logged-in user depend on `get_current_user`, which rejects the
request with 401 before the handler runs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the caller, decoded from a verified token."""
    username: str


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_WORK_FACTOR)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Error verifying password: {e}")
        return False


def create_token(username: str) -> str:
    """
    Issue a signed session token for a user.

    Args:
        username: Subject of the token

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    claims = {"sub": username, "iat": now}
    if settings.ACCESS_TOKEN_EXPIRE_MINUTES:
        claims["exp"] = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[CurrentUser]:
    """
    Verify a session token.

    Returns:
        CurrentUser if the signature and claims are valid, None otherwise
    """
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning(f"Token rejected: {e}")
        return None

    username = claims.get("sub")
    if not isinstance(username, str) or not username:
        logger.warning("Token rejected: missing subject")
        return None
    return CurrentUser(username=username)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> CurrentUser:
    """Require a valid bearer token on the request."""
    if credentials is None:
        logger.info("Request without bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    user = decode_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user
