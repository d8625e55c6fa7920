"""Generic async repository shared by the ledger, portfolio, target and user stores.

Writes flush but never commit: the caller owns the unit of work (see
``db.session.transactional``). Storage failures surface as
``PersistenceError`` so services only handle the application's own
exception hierarchy.
"""

import logging
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.exceptions import PersistenceError
from portfolio_ledger.db.base import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Primary-key CRUD for one model.

    Example:
        >>> repo = PortfolioRepository(Portfolio, db)
        >>> portfolio = await repo.get(portfolio_id)
        >>> await repo.update(db_obj=portfolio, obj_in={"name": "Retirement"})
    """

    def __init__(self, model: type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any) -> ModelType | None:
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalar_one_or_none()

    async def create(self, *, obj_in: BaseModel | dict[str, Any]) -> ModelType:
        """Insert a row and load its server-side defaults.

        Raises:
            PersistenceError: The insert failed at the storage layer
        """
        db_obj = self.model(**self._values(obj_in))
        self.db.add(db_obj)
        await self._flush(f"create {self.model.__name__}", refresh=db_obj)
        return db_obj

    async def update(
        self,
        *,
        db_obj: ModelType,
        obj_in: BaseModel | dict[str, Any],
    ) -> ModelType:
        """Apply a partial set of fields. Unset pydantic fields are left alone.

        Raises:
            PersistenceError: The update failed at the storage layer
        """
        for field, value in self._values(obj_in).items():
            setattr(db_obj, field, value)

        await self._flush(f"update {self.model.__name__}", refresh=db_obj)
        return db_obj

    async def delete(self, *, id: Any) -> ModelType:
        """
        Raises:
            ValueError: No row with this primary key
            PersistenceError: The delete failed at the storage layer
        """
        db_obj = await self.get(id)
        if not db_obj:
            raise ValueError(f"{self.model.__name__} with id {id} not found")

        await self.db.delete(db_obj)
        await self._flush(f"delete {self.model.__name__}")
        return db_obj

    @staticmethod
    def _values(obj_in: BaseModel | dict[str, Any]) -> dict[str, Any]:
        if isinstance(obj_in, BaseModel):
            return obj_in.model_dump(exclude_unset=True)
        return obj_in

    async def _flush(self, action: str, refresh: ModelType | None = None) -> None:
        try:
            await self.db.flush()
            if refresh is not None:
                await self.db.refresh(refresh)
        except SQLAlchemyError as e:
            logger.error(f"Storage failure during {action}: {type(e).__name__}: {e}")
            raise PersistenceError(f"Failed to {action}") from e
