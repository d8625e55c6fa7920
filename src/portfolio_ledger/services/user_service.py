"""Service layer for user registration and authentication."""

import logging
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.exceptions import ConflictError
from portfolio_ledger.core.security import create_access_token, get_password_hash, verify_password
from portfolio_ledger.db.session import transactional
from portfolio_ledger.models.user import User
from portfolio_ledger.repositories.user import UserRepository
from portfolio_ledger.schemas.auth import UserRegister

logger = logging.getLogger(__name__)


async def register_user(db: AsyncSession, data: UserRegister) -> User:
    """Create a new active user.

    Args:
        db: Async database session
        data: Registration payload

    Returns:
        The created user

    Raises:
        ConflictError: Username or email already registered
    """
    repo = UserRepository(User, db)
    if await repo.exists_by_username(data.username):
        raise ConflictError("Username already registered", error_code="USERNAME_TAKEN")
    if await repo.exists_by_email(data.email):
        raise ConflictError("Email already registered", error_code="EMAIL_TAKEN")

    async with transactional(db):
        user = await repo.create(
            obj_in={
                "email": data.email,
                "username": data.username,
                "hashed_password": get_password_hash(data.password),
                "is_active": True,
            }
        )

    logger.info(f"Registered user {user.username} (id={user.id})")
    return user


async def authenticate_user(
    db: AsyncSession,
    username_or_email: str,
    password: str,
) -> User:
    """Authenticate a user by username/email and password.

    Args:
        db: Async database session
        username_or_email: Username or email address
        password: Plain text password to verify

    Returns:
        User: Authenticated user instance

    Raises:
        HTTPException: 401 if credentials invalid, 400 if user inactive

    Example:
        >>> user = await authenticate_user(db, "john@example.com", "secret123")
        >>> print(user.username)
        johndoe
    """
    user = await UserRepository(User, db).get_by_username_or_email(username_or_email)

    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user",
        )

    return user


async def login(db: AsyncSession, username_or_email: str, password: str) -> str:
    """Authenticate and issue an access token.

    Returns:
        Encoded JWT access token

    Raises:
        HTTPException: 401 if credentials invalid, 400 if user inactive
    """
    user = await authenticate_user(db, username_or_email, password)
    return create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
