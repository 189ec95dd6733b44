"""Repository for staged loan applications and their reference data."""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.core.enums import LoanStage
from lendpool.db.base import utcnow
from lendpool.models.domain.loan import LoanApplication, Purpose
from lendpool.repositories.base import BaseRepository


class LoanRepository(BaseRepository[LoanApplication]):
    """
    Repository for LoanApplication with stage-aware queries.

    Every lookup that feeds a state transition filters on the expected stage,
    so a record that has already moved on reads as missing.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the loan repository.

        Args:
            db: Async database session
        """
        super().__init__(LoanApplication, db)

    async def get_in_stage(
        self,
        id: int,
        stage: LoanStage,
        for_update: bool = False,
    ) -> Optional[LoanApplication]:
        """
        Retrieve an application by ID if it currently sits in the given stage.

        Args:
            id: ID of the application
            stage: Stage the application must be in
            for_update: Lock the row for the rest of the transaction

        Returns:
            The application, or None if absent or in another stage
        """
        stmt = select(LoanApplication).where(
            LoanApplication.id == id,
            LoanApplication.stage == stage,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return await self._one_or_none(stmt)

    async def get_by_stage(
        self,
        stage: LoanStage,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LoanApplication]:
        """
        Retrieve applications in a stage, oldest first.

        Args:
            stage: Stage to filter by
            skip: Number of records to skip (offset)
            limit: Maximum number of records to return

        Returns:
            List of applications in the stage
        """
        stmt = (
            select(LoanApplication)
            .where(LoanApplication.stage == stage)
            .order_by(LoanApplication.id)
            .offset(skip)
            .limit(limit)
        )
        return await self._all(stmt)

    async def get_by_borrower(
        self,
        borrower_id: int,
        stage: Optional[LoanStage] = None,
    ) -> List[LoanApplication]:
        """
        Retrieve all applications opened by a borrower, newest first.

        Args:
            borrower_id: ID of the borrower
            stage: Optional stage filter

        Returns:
            List of the borrower's applications
        """
        stmt = select(LoanApplication).where(LoanApplication.borrower_id == borrower_id)
        if stage is not None:
            stmt = stmt.where(LoanApplication.stage == stage)
        stmt = stmt.order_by(LoanApplication.app_open_date.desc(), LoanApplication.id.desc())
        return await self._all(stmt)

    async def get_overdue_approved(self, now: datetime) -> List[LoanApplication]:
        """
        Retrieve approved requests whose funding window has closed.

        Args:
            now: Reference time

        Returns:
            Approved applications with funding_deadline before now, locked
        """
        stmt = (
            select(LoanApplication)
            .where(
                LoanApplication.stage == LoanStage.APPROVED,
                LoanApplication.funding_deadline < now,
            )
            .order_by(LoanApplication.id)
            .with_for_update()
        )
        return await self._all(stmt)

    async def update_in_stage(self, id: int, expected_stage: LoanStage, **values) -> bool:
        """
        Update an application only if it is still in the given stage.

        Args:
            id: ID of the application
            expected_stage: Stage the application must still be in
            **values: Column values to set, including a new stage

        Returns:
            True if the row was updated. Loaded instances are not
            synchronized; callers refresh them.
        """
        stmt = (
            update(LoanApplication)
            .where(LoanApplication.id == id, LoanApplication.stage == expected_stage)
            .values(updated_at=utcnow(), **values)
            .returning(LoanApplication.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def count_by_stage(self) -> Dict[LoanStage, int]:
        """Count applications in each stage; stages with none are reported as 0."""
        stmt = select(LoanApplication.stage, func.count()).group_by(LoanApplication.stage)
        result = await self.db.execute(stmt)
        counts = {stage: 0 for stage in LoanStage}
        counts.update({stage: count for stage, count in result.all()})
        return counts


class PurposeRepository(BaseRepository[Purpose]):
    """Repository for loan purpose reference data."""

    def __init__(self, db: AsyncSession):
        super().__init__(Purpose, db)

    async def get_by_title(self, title: str) -> Optional[Purpose]:
        stmt = select(Purpose).where(Purpose.title == title)
        return await self._one_or_none(stmt)
