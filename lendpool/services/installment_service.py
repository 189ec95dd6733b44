"""Installment service: repayments on funded loans and their archival."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.core.enums import LoanStage
from lendpool.core.exceptions import (
    InsufficientFundsError,
    InvalidArgumentError,
    NotFoundError,
    PersistenceError,
)
from lendpool.db.session import transaction
from lendpool.models.domain.loan import LoanApplication
from lendpool.repositories.funding_repository import InvestmentRepository
from lendpool.repositories.loan_repository import LoanRepository
from lendpool.repositories.user_repository import UserRepository
from lendpool.services import amortization
from lendpool.services.account_service import AccountService

logger = logging.getLogger(__name__)

LOAN_STAGES = (LoanStage.FUNDED, LoanStage.PAID_OFF)


@dataclass
class InstallmentPayment:
    """
    Outcome of one installment payment.

    ``loan`` is the row after the payment, so a final installment shows it
    PAID_OFF with nothing outstanding; ``balance_before`` keeps the
    remaining balance the payment was made against.
    """

    loan: LoanApplication
    amount_paid: Decimal
    interest: Decimal
    principal: Decimal
    balance_before: Decimal
    distributions: Dict[int, Decimal] = field(default_factory=dict)
    paid_off: bool = False


class InstallmentService:
    """
    Installment service for funded loans.

    Each installment moves money from the borrower to the loan's investors in
    proportion to their investment and retires part of the principal. The
    installment that would retire the rest of the principal instead charges
    exactly the outstanding balance plus its interest and archives the loan
    as PAID_OFF.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the installment service.

        Args:
            db: Async database session
        """
        self.db = db
        self.repo = LoanRepository(db)
        self.investment_repo = InvestmentRepository(db)
        self.user_repo = UserRepository(db)
        self.accounts = AccountService(db)

    async def pay_installment(self, loan_id: int) -> InstallmentPayment:
        """
        Collect one installment from the borrower and distribute it.

        Args:
            loan_id: ID of the funded loan

        Returns:
            InstallmentPayment describing the money moved

        Raises:
            NotFoundError: If no FUNDED loan has this ID
            InsufficientFundsError: If the borrower cannot cover the installment
            PersistenceError: If the loan could not be archived
        """
        async with transaction(self.db):
            loan = await self.repo.get_in_stage(loan_id, LoanStage.FUNDED, for_update=True)
            if loan is None:
                raise NotFoundError(f"No Funded loan exists with id: {loan_id}")

            borrower = await self.user_repo.get_by_id(loan.borrower_id)
            if borrower is None:
                raise NotFoundError(f"No borrower with id: {loan.borrower_id}")
            if borrower.account_balance < loan.installment_amt:
                logger.warning(
                    f"Borrower {loan.borrower_id} cannot cover installment "
                    f"{loan.installment_amt} on loan {loan_id}"
                )
                raise InsufficientFundsError(
                    f"Borrower {loan.borrower_id} does not have {loan.installment_amt} "
                    f"available for the installment"
                )

            balance_before = loan.remaining_balance
            split = amortization.split_installment(
                loan.remaining_balance, loan.interest_rate, loan.installment_amt
            )
            if split.principal <= 0:
                raise InvalidArgumentError(
                    f"Installment on loan {loan_id} does not cover the monthly interest"
                )

            paid_off = loan.remaining_balance <= split.principal
            if paid_off:
                principal = loan.remaining_balance
                amount = principal + split.interest
            else:
                principal = split.principal
                amount = loan.installment_amt

            await self.accounts.withdraw(loan.borrower_id, amount)
            distributions = await self._distribute(loan, amount)

            if paid_off:
                await self._archive(loan)
            else:
                loan.remaining_balance = loan.remaining_balance - principal
                await self.db.flush()

        logger.info(
            f"Installment of {amount} on loan {loan_id}: interest {split.interest}, "
            f"principal {principal}, remaining {loan.remaining_balance}"
        )
        if paid_off:
            logger.info(f"Loan {loan_id} paid off")

        return InstallmentPayment(
            loan=loan,
            amount_paid=amount,
            interest=split.interest,
            principal=principal,
            balance_before=balance_before,
            distributions=distributions,
            paid_off=paid_off,
        )

    async def payoff_loan(self, loan_id: int) -> LoanApplication:
        """
        Archive a FUNDED loan as PAID_OFF.

        Only moves the record; no money changes hands.

        Raises:
            NotFoundError: If no FUNDED loan has this ID
            PersistenceError: If the stage update did not land
        """
        async with transaction(self.db):
            loan = await self.repo.get_in_stage(loan_id, LoanStage.FUNDED, for_update=True)
            if loan is None:
                raise NotFoundError(f"No Funded loan exists with id: {loan_id}")
            await self._archive(loan)

        logger.info(f"Loan {loan_id} archived as paid off")
        return loan

    # ===== Queries =====

    async def get_loan(self, loan_id: int, stage: LoanStage = LoanStage.FUNDED) -> LoanApplication:
        """
        Retrieve a loan in the FUNDED or PAID_OFF stage.

        Raises:
            InvalidArgumentError: If stage is not a loan stage
            NotFoundError: If no loan in that stage has this ID
        """
        self._check_stage(stage)
        loan = await self.repo.get_in_stage(loan_id, stage)
        if loan is None:
            raise NotFoundError(f"No {stage.value} loan exists with id: {loan_id}")
        return loan

    async def list_loans(
        self,
        stage: LoanStage = LoanStage.FUNDED,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LoanApplication]:
        self._check_stage(stage)
        return await self.repo.get_by_stage(stage, skip=skip, limit=limit)

    async def list_loans_for_borrower(self, borrower_id: int) -> List[LoanApplication]:
        if not await self.user_repo.exists(borrower_id):
            raise NotFoundError(f"No user with id: {borrower_id}")
        applications = await self.repo.get_by_borrower(borrower_id)
        return [a for a in applications if a.stage in LOAN_STAGES]

    async def amortization_schedule(self, loan_id: int) -> List[dict]:
        """
        Project the remaining installments of a FUNDED loan.

        Raises:
            NotFoundError: If no FUNDED loan has this ID
        """
        loan = await self.get_loan(loan_id)
        return amortization.amortization_schedule(
            loan.remaining_balance, loan.interest_rate, loan.installment_amt
        )

    # ===== Helpers =====

    async def _distribute(self, loan: LoanApplication, amount: Decimal) -> Dict[int, Decimal]:
        """Credit amount to the loan's investors pro rata to their investment."""
        investments = await self.investment_repo.get_for_loan(loan.id)
        if not investments:
            raise PersistenceError(f"Funded loan {loan.id} has no investments")

        cuts = amortization.allocate_pro_rata(
            amount, {i.investor_id: i.invested_amt for i in investments}
        )
        for investor_id, cut in cuts.items():
            if cut > 0:
                await self.accounts.deposit(investor_id, cut)
        return cuts

    async def _archive(self, loan: LoanApplication) -> None:
        updated = await self.repo.update_in_stage(
            loan.id,
            expected_stage=LoanStage.FUNDED,
            stage=LoanStage.PAID_OFF,
            remaining_balance=Decimal("0.00"),
            paid_off_date=datetime.now(timezone.utc),
        )
        if not updated:
            logger.error(f"Stage update for loan {loan.id} did not apply")
            raise PersistenceError(f"Failed to archive loan {loan.id} as paid off")
        await self.db.refresh(loan)

    @staticmethod
    def _check_stage(stage: LoanStage) -> None:
        if stage not in LOAN_STAGES:
            raise InvalidArgumentError(f"{stage.value} is not a loan stage")
