"""Repository for pledges and investments linking investors to loans."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.models.domain.loan import Investment, Pledge
from lendpool.repositories.base import BaseRepository


class PledgeRepository(BaseRepository[Pledge]):
    """Repository for investor pledges against approved requests."""

    def __init__(self, db: AsyncSession):
        super().__init__(Pledge, db)

    async def get_for_application(self, application_id: int) -> List[Pledge]:
        """
        Retrieve every pledge on an application, ordered by investor ID.

        Args:
            application_id: ID of the approved request

        Returns:
            List of pledges
        """
        stmt = (
            select(Pledge)
            .where(Pledge.application_id == application_id)
            .order_by(Pledge.investor_id)
        )
        return await self._all(stmt)

    async def get_for_investor(self, investor_id: int) -> List[Pledge]:
        stmt = (
            select(Pledge)
            .where(Pledge.investor_id == investor_id)
            .order_by(Pledge.application_id)
        )
        return await self._all(stmt)

    async def get_pledge(self, application_id: int, investor_id: int) -> Optional[Pledge]:
        stmt = select(Pledge).where(
            Pledge.application_id == application_id,
            Pledge.investor_id == investor_id,
        )
        return await self._one_or_none(stmt)

    async def upsert(self, application_id: int, investor_id: int, amount: Decimal) -> Pledge:
        """
        Add amount to an investor's pledge, creating the pledge if needed.

        Args:
            application_id: ID of the approved request
            investor_id: ID of the investor
            amount: Amount being pledged by this call

        Returns:
            The pledge holding the accumulated amount
        """
        pledge = await self.get_pledge(application_id, investor_id)
        if pledge is None:
            return await self.create(
                application_id=application_id,
                investor_id=investor_id,
                pledged_amt=amount,
            )
        pledge.pledged_amt = pledge.pledged_amt + amount
        await self.db.flush()
        return pledge

    async def delete_for_application(self, application_id: int) -> int:
        """
        Delete every pledge on an application.

        Args:
            application_id: ID of the approved request

        Returns:
            Number of pledges deleted
        """
        stmt = delete(Pledge).where(Pledge.application_id == application_id)
        result = await self.db.execute(stmt)
        await self.db.flush()
        return result.rowcount


class InvestmentRepository(BaseRepository[Investment]):
    """Repository for investor shares in funded loans."""

    def __init__(self, db: AsyncSession):
        super().__init__(Investment, db)

    async def get_for_loan(self, loan_id: int) -> List[Investment]:
        """
        Retrieve every investment in a loan, ordered by investor ID.

        Args:
            loan_id: ID of the funded loan

        Returns:
            List of investments
        """
        stmt = (
            select(Investment)
            .where(Investment.loan_id == loan_id)
            .order_by(Investment.investor_id)
        )
        return await self._all(stmt)

    async def get_for_investor(self, investor_id: int) -> List[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.investor_id == investor_id)
            .order_by(Investment.loan_id)
        )
        return await self._all(stmt)

    async def batch_create(self, investments: List[Investment]) -> List[Investment]:
        """
        Insert several investments in one flush.

        Args:
            investments: Unsaved Investment instances

        Returns:
            The same instances with IDs assigned
        """
        self.db.add_all(investments)
        await self.db.flush()
        return investments
