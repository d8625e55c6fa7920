"""Lookups for portfolio owners."""

from sqlalchemy import func, or_, select

from portfolio_ledger.models.user import User
from portfolio_ledger.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Owner lookups used by registration, login and token resolution.

    Usernames match exactly. Emails match case-insensitively, so
    ``Alice@Example.com`` and ``alice@example.com`` are the same account.
    """

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> User | None:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_username_or_email(self, identifier: str) -> User | None:
        """Resolve a login identifier in one query.

        Usernames cannot contain ``@``, so an identifier matches at most one
        user either way.
        """
        identifier = identifier.strip()
        result = await self.db.execute(
            select(User).where(
                or_(
                    User.username == identifier,
                    func.lower(User.email) == identifier.lower(),
                )
            )
        )
        return result.scalars().first()

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def exists_by_username(self, username: str) -> bool:
        return await self.get_by_username(username) is not None
