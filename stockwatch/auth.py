"""
Authentication and authorization utilities.

Provides password hashing, JWT token creation/validation, and FastAPI dependencies
for protecting endpoints. Every service verifies tokens with the same secret and
trusts the claims; only the auth service re-checks that the user still exists.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from . import models, schemas
from .database import get_db
from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, BCRYPT_ROUNDS
from .errors import AuthError

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

# Missing credentials are reported by get_current_user, not by the scheme
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The hashed password to compare against

    Returns:
        True if the password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for secure storage."""
    return pwd_context.hash(password)


def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user: The user the token identifies
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> schemas.TokenData:
    """
    Verify a JWT and return its claims.

    Raises:
        AuthError: 403 if the token is malformed, tampered with or expired
    """
    invalid = AuthError("Invalid or expired token", status_code=403)
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id_str = payload.get("sub")
        if user_id_str is None:
            logger.error("No 'sub' claim in token")
            raise invalid
        return schemas.TokenData(
            user_id=int(user_id_str),
            username=payload.get("username"),
            email=payload.get("email"),
            role=payload.get("role"),
        )
    except (JWTError, ValueError) as e:
        logger.warning(f"Token verification failed: {e}")
        raise invalid


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.User]:
    """
    Authenticate a user by email and password.

    Returns:
        User object if authentication succeeds, None otherwise
    """
    user = db.query(models.User).filter(models.User.email == email).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> schemas.CurrentUser:
    """
    FastAPI dependency to get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Authorization credentials (injected)

    Returns:
        Current authenticated user information

    Raises:
        AuthError: 401 if no token was sent, 403 if it is invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token required")

    token = credentials.credentials
    token_data = decode_access_token(token)
    return schemas.CurrentUser(
        id=token_data.user_id,
        username=token_data.username,
        email=token_data.email,
        role=token_data.role,
        token=token,
    )


def get_current_db_user(
    current_user: schemas.CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> models.User:
    """
    FastAPI dependency that also requires the token's user to still exist.

    Raises:
        AuthError: 401 if the user was deleted after the token was issued
    """
    user = db.query(models.User).filter(models.User.id == current_user.id).first()
    if user is None:
        raise AuthError("User no longer exists")
    return user
