"""
Auth Service FastAPI Application.

This module implements the account service: registration, login, the caller's
profile and password changes. It is the only service that issues tokens; the
other services verify them with the shared secret.

Endpoints:
    POST /api/auth/register: Create an account and return a token
    POST /api/auth/login: Exchange email and password for a token
    GET /api/auth/me: Current user
    PUT /api/auth/profile: Update username and email
    POST /api/auth/change-password: Change password
    GET /health: Health check endpoint for orchestration systems

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "auth-service".
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from fastapi import FastAPI, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ... import auth, models, schemas
from ...config import FRONTEND_URL, configure_logging
from ...database import get_db, init_db
from ...errors import AuthError, ConflictError, ValidationError, register_exception_handlers
from . import crud

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="auth-service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


@app.get("/health", response_model=dict)
def health():
    """
    Health check endpoint for the auth service.

    Returns:
        dict: status, service name and current timestamp

    Example:
        GET /health
        Response: {"status": "healthy", "service": "auth-service", ...}
    """
    return {
        "status": "healthy",
        "service": "auth-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/auth/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserRegister, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Args:
        user: Registration data (username, email, password)
        db: Database session (injected)

    Returns:
        JWT access token and the created user

    Raises:
        ConflictError: 400 if the username or email already exists
    """
    email = str(user.email).lower()
    if crud.get_user_by_username_or_email(db, user.username, email):
        raise ConflictError("User with this username or email already exists")

    password_hash = auth.get_password_hash(user.password)
    try:
        db_user = crud.create_user(db, username=user.username, email=email, password_hash=password_hash)
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this username or email already exists")

    logger.info(f"New user registered: {db_user.username} ({db_user.email})")
    return schemas.AuthResponse(
        message="User registered successfully",
        token=auth.create_access_token(db_user),
        user=schemas.UserPublic.model_validate(db_user),
    )


@app.post("/api/auth/login", response_model=schemas.AuthResponse)
def login(credentials: schemas.UserLogin, db: Session = Depends(get_db)):
    """
    Authenticate and login a user.

    Raises:
        AuthError: 401 "Invalid email or password" for an unknown email or a wrong password
    """
    user = auth.authenticate_user(db, str(credentials.email).lower(), credentials.password)
    if not user:
        raise AuthError("Invalid email or password")

    logger.info(f"User logged in: {user.username} ({user.email})")
    return schemas.AuthResponse(
        message="Login successful",
        token=auth.create_access_token(user),
        user=schemas.UserPublic.model_validate(user),
    )


@app.get("/api/auth/me", response_model=schemas.MeResponse)
def get_me(current_user: models.User = Depends(auth.get_current_db_user)):
    """Return the account behind the caller's token."""
    return {"user": current_user}


@app.put("/api/auth/profile", response_model=schemas.ProfileResponse)
def update_profile(
    profile: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_db_user)
):
    """
    Update the caller's username and email.

    Raises:
        ConflictError: 400 if the email or username belongs to another user
    """
    email = str(profile.email).lower()
    if crud.email_taken_by_other(db, email, current_user.id):
        raise ConflictError("Email is already taken")
    try:
        db_user = crud.update_profile(db, current_user, username=profile.username, email=email)
    except IntegrityError:
        db.rollback()
        raise ConflictError("Username is already taken")

    logger.info(f"User profile updated: {db_user.username} ({db_user.email})")
    return {"message": "Profile updated successfully", "user": db_user}


@app.post("/api/auth/change-password", response_model=schemas.MessageResponse)
def change_password(
    passwords: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_db_user)
):
    """
    Change the caller's password.

    Raises:
        ValidationError: 400 if the current password is wrong
    """
    if not auth.verify_password(passwords.current_password, current_user.password_hash):
        raise ValidationError("Current password is incorrect")

    crud.update_password(db, current_user, auth.get_password_hash(passwords.new_password))
    logger.info(f"Password changed for user: {current_user.username}")
    return {"message": "Password changed successfully"}
