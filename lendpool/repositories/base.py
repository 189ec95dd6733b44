"""Generic async repository the domain repositories build on."""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """
    Integer-keyed CRUD over one model.

    Repositories flush so generated IDs are available, but never commit:
    the service running the operation owns the transaction and decides
    whether the whole unit of work lands.

    Type Parameters:
        ModelType: The ORM model this repository reads and writes
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize the repository.

        Args:
            model: ORM model class
            db: Async database session
        """
        self.model = model
        self.db = db

    async def create(self, **values: Any) -> ModelType:
        """
        Insert a row and flush it.

        Args:
            **values: Column values for the new row

        Returns:
            The new instance, with its ID assigned
        """
        instance = self.model(**values)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        return await self._one_or_none(select(self.model).where(self.model.id == id))

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        order_by: Optional[Any] = None,
    ) -> List[ModelType]:
        """
        Page through every row.

        Args:
            skip: Rows to skip
            limit: Maximum rows to return
            order_by: Ordering clause (primary key when omitted)

        Returns:
            One page of rows
        """
        stmt = (
            select(self.model)
            .order_by(order_by if order_by is not None else self.model.id)
            .offset(skip)
            .limit(limit)
        )
        return await self._all(stmt)

    async def delete(self, id: int) -> bool:
        """
        Delete a row by ID with a single DELETE statement.

        Returns:
            True if a row was removed
        """
        result = await self.db.execute(delete(self.model).where(self.model.id == id))
        await self.db.flush()
        return result.rowcount > 0

    async def exists(self, id: int) -> bool:
        stmt = select(self.model.id).where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _one_or_none(self, stmt: Select) -> Optional[ModelType]:
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _all(self, stmt: Select) -> List[ModelType]:
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
