"""Repository for users and their account balances."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.models.domain.user import User
from lendpool.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """
    Repository for User with atomic balance mutations.

    Balance changes are single UPDATE statements evaluated by the database,
    so concurrent deposits and withdrawals on one user never lose an update.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_by_id(self, id: int) -> Optional[User]:
        """Retrieve a user by ID, refreshing any copy already in the session."""
        stmt = (
            select(User)
            .where(User.id == id)
            .execution_options(populate_existing=True)
        )
        return await self._one_or_none(stmt)

    async def get_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return await self._one_or_none(stmt)

    async def credit(self, user_id: int, amount: Decimal) -> Optional[Decimal]:
        """
        Add amount to a user's balance.

        Args:
            user_id: ID of the user
            amount: Positive amount to add

        Returns:
            The new balance, or None if the user does not exist
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(account_balance=User.account_balance + amount)
            .returning(User.account_balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def debit(self, user_id: int, amount: Decimal) -> Optional[Decimal]:
        """
        Subtract amount from a user's balance if the balance covers it.

        The balance guard is part of the UPDATE itself.

        Args:
            user_id: ID of the user
            amount: Positive amount to subtract

        Returns:
            The new balance, or None if the user does not exist or the
            balance is below amount
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.account_balance >= amount)
            .values(account_balance=User.account_balance - amount)
            .returning(User.account_balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
