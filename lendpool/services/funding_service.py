"""Funding service: pooling investor pledges until a request is fully funded."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.core.enums import CancellationReason, LoanStage
from lendpool.core.exceptions import (
    FundingCapacityError,
    FundingStateError,
    InsufficientFundsError,
    InvalidArgumentError,
    NotFoundError,
)
from lendpool.db.session import transaction
from lendpool.models.domain.loan import Investment, LoanApplication, Pledge
from lendpool.repositories.funding_repository import InvestmentRepository, PledgeRepository
from lendpool.repositories.loan_repository import LoanRepository
from lendpool.repositories.user_repository import UserRepository
from lendpool.services.account_service import AccountService
from lendpool.services.amortization import to_money
from lendpool.services.request_service import RequestService

logger = logging.getLogger(__name__)


class FundingService:
    """
    Funding service for approved requests.

    Investors pledge toward an APPROVED request until the pledges cover the
    approved amount. At that point, in the same transaction, the pledges
    become investments, the borrower receives the funds and the request
    becomes a FUNDED loan.

    Invariants kept by every operation here:
    - amt_funded equals the sum of pledges while the request is APPROVED
    - amt_funded never exceeds amt_approved
    - the investments of a funded loan sum to its amt_funded
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the funding service.

        Args:
            db: Async database session
        """
        self.db = db
        self.repo = LoanRepository(db)
        self.pledge_repo = PledgeRepository(db)
        self.investment_repo = InvestmentRepository(db)
        self.user_repo = UserRepository(db)
        self.accounts = AccountService(db)

    async def enable_funding(self, application_id: int) -> LoanApplication:
        """
        Open an APPROVED request to investor pledges.

        Raises:
            NotFoundError: If no APPROVED request has this ID
        """
        async with transaction(self.db):
            application = await self._get_approved(application_id)
            application.available_for_funding = True
            await self.db.flush()

        logger.info(f"Funding enabled for request {application_id}")
        return application

    async def fund_request(
        self,
        application_id: int,
        investor_id: int,
        amount: Any,
    ) -> LoanApplication:
        """
        Pledge an investor's money toward an APPROVED request.

        The request row stays locked from the capacity check to commit, so
        concurrent pledges on one request serialize and cannot overfund it.
        When the pledge completes the funding the request is converted to a
        FUNDED loan before the transaction commits.

        Args:
            application_id: ID of the approved request
            investor_id: ID of the investor (role already checked by the caller)
            amount: Amount to pledge, > 0

        Returns:
            The application, APPROVED if partially funded or FUNDED if this
            pledge completed it

        Raises:
            InvalidArgumentError: If amount is not positive
            NotFoundError: If the request or investor does not exist
            FundingStateError: If the request is not open for funding
            FundingCapacityError: If amount exceeds what is left to fund
            InsufficientFundsError: If the investor's balance is below amount
        """
        value = to_money(amount)
        if value <= 0:
            raise InvalidArgumentError("Funding amount must be greater than 0")

        async with transaction(self.db):
            application = await self._get_approved(application_id)
            investor = await self.user_repo.get_by_id(investor_id)
            if investor is None:
                raise NotFoundError(f"No investor with id: {investor_id}")

            if application.is_funded or not application.available_for_funding:
                raise FundingStateError(f"Request {application_id} is not available for funding")

            capacity = application.funding_capacity
            if value > capacity:
                raise FundingCapacityError(
                    f"Funding amount {value} exceeds remaining capacity {capacity} "
                    f"on request {application_id}"
                )
            if investor.account_balance < value:
                raise InsufficientFundsError(
                    f"Investor {investor_id} does not have {value} available to fund"
                )

            await self.accounts.withdraw(investor_id, value)
            application.amt_funded = application.amt_funded + value
            await self.pledge_repo.upsert(application_id, investor_id, value)
            await self.db.flush()

            logger.info(
                f"Investor {investor_id} pledged {value} to request {application_id} "
                f"({application.amt_funded}/{application.amt_approved})"
            )

            if application.amt_funded == application.amt_approved:
                await self._convert_to_loan(application)

        return application

    async def expire_overdue_requests(
        self,
        now: Optional[datetime] = None,
    ) -> List[LoanApplication]:
        """
        Cancel APPROVED requests whose funding window has closed.

        Each expired request's pledges are refunded to its investors.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            The requests that were cancelled
        """
        now = now or datetime.now(timezone.utc)
        requests = RequestService(self.db)

        async with transaction(self.db):
            expired = await self.repo.get_overdue_approved(now)
            for application in expired:
                await requests.cancel_approved(application, CancellationReason.FUNDING_EXPIRED)

        if expired:
            logger.info(f"Expired {len(expired)} unfunded requests: {[a.id for a in expired]}")
        return expired

    # ===== Queries =====

    async def list_pledges(self, application_id: int) -> List[Pledge]:
        """
        Retrieve the pledges on an APPROVED request.

        Raises:
            NotFoundError: If no APPROVED request has this ID
        """
        if await self.repo.get_in_stage(application_id, LoanStage.APPROVED) is None:
            raise NotFoundError(f"No Approved request exists with id: {application_id}")
        return await self.pledge_repo.get_for_application(application_id)

    async def list_pledges_for_investor(self, investor_id: int) -> List[Pledge]:
        await self._require_user(investor_id)
        return await self.pledge_repo.get_for_investor(investor_id)

    async def list_investments(self, loan_id: int) -> List[Investment]:
        """
        Retrieve the investments in a FUNDED or PAID_OFF loan.

        Raises:
            NotFoundError: If no loan in either stage has this ID
        """
        loan = await self.repo.get_by_id(loan_id)
        if loan is None or loan.stage not in (LoanStage.FUNDED, LoanStage.PAID_OFF):
            raise NotFoundError(f"No funded loan exists with id: {loan_id}")
        return await self.investment_repo.get_for_loan(loan_id)

    async def list_investments_for_investor(self, investor_id: int) -> List[Investment]:
        await self._require_user(investor_id)
        return await self.investment_repo.get_for_investor(investor_id)

    # ===== Helpers =====

    async def _convert_to_loan(self, application: LoanApplication) -> None:
        """
        Turn a fully pledged request into a funded loan.

        Pledges are copied one-for-one into investments, the borrower is paid
        amt_funded, and the pledges are removed. Runs inside the caller's
        transaction.
        """
        pledges = await self.pledge_repo.get_for_application(application.id)
        pledged_total = sum((p.pledged_amt for p in pledges), Decimal("0.00"))
        if pledged_total != application.amt_funded:
            raise FundingStateError(
                f"Pledges on request {application.id} total {pledged_total}, "
                f"expected {application.amt_funded}"
            )

        await self.investment_repo.batch_create([
            Investment(
                loan_id=application.id,
                investor_id=pledge.investor_id,
                invested_amt=pledge.pledged_amt,
            )
            for pledge in pledges
        ])
        await self.accounts.deposit(application.borrower_id, application.amt_funded)
        await self.pledge_repo.delete_for_application(application.id)

        application.is_funded = True
        application.available_for_funding = False
        application.funded_date = datetime.now(timezone.utc)
        application.remaining_balance = application.amt_funded
        application.stage = LoanStage.FUNDED
        await self.db.flush()

        logger.info(
            f"Request {application.id} fully funded by {len(pledges)} investors; "
            f"disbursed {application.amt_funded} to borrower {application.borrower_id}"
        )

    async def _get_approved(self, application_id: int) -> LoanApplication:
        application = await self.repo.get_in_stage(
            application_id, LoanStage.APPROVED, for_update=True
        )
        if application is None:
            raise NotFoundError(f"No Approved request exists with id: {application_id}")
        return application

    async def _require_user(self, user_id: int) -> None:
        if not await self.user_repo.exists(user_id):
            raise NotFoundError(f"No user with id: {user_id}")
