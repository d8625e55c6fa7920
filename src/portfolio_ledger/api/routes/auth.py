"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.deps import CurrentActiveUser, DbSession
from portfolio_ledger.core.rate_limit import limiter
from portfolio_ledger.models.user import User
from portfolio_ledger.schemas.auth import Token, UserRegister
from portfolio_ledger.schemas.user import UserResponse
from portfolio_ledger.services import user_service

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(
    request: Request,
    user_data: UserRegister,
    db: DbSession,
) -> User:
    """
    Register a new user.

    Raises:
        ConflictError: 409 if username or email already exists
    """
    return await user_service.register_user(db, user_data)


@router.post("/login", response_model=Token)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login(
    request: Request,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: DbSession,
) -> Token:
    """
    OAuth2 compatible token login with username (or email) and password.

    Raises:
        HTTPException: 401 if credentials are invalid
    """
    access_token = await user_service.login(db, form_data.username, form_data.password)
    return Token(
        access_token=access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: CurrentActiveUser) -> User:
    """The currently authenticated user."""
    return current_user
