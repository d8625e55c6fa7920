"""Dependencies for FastAPI routes."""

from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.security import decode_token
from portfolio_ledger.db.session import get_db
from portfolio_ledger.models.user import User
from portfolio_ledger.repositories.user import UserRepository
from portfolio_ledger.schemas.auth import TokenData
from portfolio_ledger.services.pricing import PriceProvider, YFinancePriceProvider

# OAuth2 scheme for extracting token from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_price_provider = YFinancePriceProvider()


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Resolve the user named by the bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or the user is gone
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(token)
        username: str | None = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(subject=username)
    except jwt.InvalidTokenError:
        raise credentials_exception

    user = await UserRepository(User, db).get_by_username(token_data.subject)
    if user is None:
        raise credentials_exception

    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    The authenticated user, who must be active. Every portfolio call runs as
    this user's id.

    Raises:
        HTTPException: 400 if the user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user",
        )

    return current_user


def get_price_provider() -> PriceProvider:
    """Market data source for valuations. Overridden in tests."""
    return _price_provider


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActiveUser = Annotated[User, Depends(get_current_active_user)]
Prices = Annotated[PriceProvider, Depends(get_price_provider)]
