"""Request lifecycle service: opening, underwriting and withdrawing loan requests."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.config import settings
from lendpool.core.enums import LOAN_TERMS, CancellationReason, LoanStage
from lendpool.core.exceptions import (
    FundingStateError,
    InvalidArgumentError,
    NotFoundError,
)
from lendpool.db.session import transaction
from lendpool.models.domain.loan import LoanApplication
from lendpool.repositories.funding_repository import PledgeRepository
from lendpool.repositories.loan_repository import LoanRepository, PurposeRepository
from lendpool.repositories.user_repository import UserRepository
from lendpool.services.account_service import AccountService
from lendpool.services.amortization import (
    calculate_installment,
    compute_funding_deadline,
    to_money,
    to_rate,
)
from lendpool.services.rate_provider import RateProvider

logger = logging.getLogger(__name__)

# Fields a caller may patch, per stage. Funded amounts and identity never appear here.
UPDATABLE_FIELDS: Dict[LoanStage, frozenset] = {
    LoanStage.ACTIVE: frozenset({"amt_requested", "purpose_id", "interest_rate", "term_months"}),
    LoanStage.APPROVED: frozenset({"amt_approved", "purpose_id", "interest_rate", "term_months"}),
}


class RequestService:
    """
    Request lifecycle service for loan applications before they are funded.

    Moves applications through ACTIVE -> APPROVED and from either of those
    stages to CANCELLED. Every transition runs in a single transaction and
    only lands if the application is still in the stage it was read in.
    """

    def __init__(
        self,
        db: AsyncSession,
        rate_provider: Optional[RateProvider] = None,
        funding_window_days: Optional[int] = None,
        profit_margin: Optional[Decimal] = None,
    ):
        """
        Initialize the request service.

        Args:
            db: Async database session
            rate_provider: Market rate supplier, needed only to open requests
            funding_window_days: Days an approved request stays open for funding
                (defaults to settings)
            profit_margin: Fraction added to the market rate (defaults to settings)
        """
        self.db = db
        self.rate_provider = rate_provider
        self.funding_window_days = (
            funding_window_days
            if funding_window_days is not None
            else settings.FUNDING_WINDOW_DAYS
        )
        self.profit_margin = Decimal(
            str(profit_margin if profit_margin is not None else settings.PROFIT_MARGIN)
        )
        self.repo = LoanRepository(db)
        self.purpose_repo = PurposeRepository(db)
        self.pledge_repo = PledgeRepository(db)
        self.user_repo = UserRepository(db)
        self.accounts = AccountService(db)

    # ===== Opening =====

    async def create_request(
        self,
        borrower_id: int,
        amt_requested: Any,
        purpose_id: int,
        term_months: Any,
    ) -> LoanApplication:
        """
        Open a new loan request priced off the current market rate.

        Args:
            borrower_id: ID of the borrower (role already checked by the caller)
            amt_requested: Amount requested, > 0
            purpose_id: ID of the loan purpose
            term_months: Term, one of LOAN_TERMS

        Returns:
            The new ACTIVE application

        Raises:
            InvalidArgumentError: If amount or term is out of domain
            NotFoundError: If the borrower or purpose does not exist
            RateProviderError: If no market rate is available
        """
        amount = self._validate_amount(amt_requested, "amt_requested")
        term = self._validate_term(term_months)
        if self.rate_provider is None:
            raise InvalidArgumentError("A rate provider is required to open requests")

        if not await self.user_repo.exists(borrower_id):
            raise NotFoundError(f"No borrower with id: {borrower_id}")
        if not await self.purpose_repo.exists(purpose_id):
            raise NotFoundError(f"Purpose with id of {purpose_id} does not exist")

        market_rate = await self.rate_provider.get_rate(term)
        interest_rate = to_rate(market_rate / Decimal("100") + self.profit_margin)
        installment = calculate_installment(amount, interest_rate, term)

        async with transaction(self.db):
            application = await self.repo.create(
                stage=LoanStage.ACTIVE,
                borrower_id=borrower_id,
                purpose_id=purpose_id,
                amt_requested=amount,
                amt_funded=Decimal("0.00"),
                interest_rate=interest_rate,
                term_months=term,
                installment_amt=installment,
                app_open_date=datetime.now(timezone.utc),
            )

        logger.info(
            f"Opened request {application.id} for borrower {borrower_id}: "
            f"{amount} over {term} months at {interest_rate}"
        )
        return application

    # ===== Underwriting =====

    @staticmethod
    def validate_approval_data(data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalize underwriting terms.

        Requires interest_rate, amt_approved and term_months, all numeric,
        with 0 < interest_rate <= 1, amt_approved >= 1 and term_months in
        LOAN_TERMS.

        Returns:
            Normalized values as Decimal/int

        Raises:
            InvalidArgumentError: On any missing or out-of-range field
        """
        required_fields = ["interest_rate", "amt_approved", "term_months"]
        missing_fields = [field for field in required_fields if data.get(field) is None]
        if missing_fields:
            raise InvalidArgumentError(
                f"Missing required approval fields: {', '.join(missing_fields)}"
            )

        interest_rate = to_rate(data["interest_rate"], "interest_rate")
        if interest_rate <= 0 or interest_rate > 1:
            raise InvalidArgumentError("Interest rate must be greater than 0 and at most 1")

        amt_approved = to_money(data["amt_approved"], "amt_approved")
        if amt_approved < 1:
            raise InvalidArgumentError("Approved amount must be at least 1")

        return {
            "interest_rate": interest_rate,
            "amt_approved": amt_approved,
            "term_months": RequestService._validate_term(data["term_months"]),
        }

    async def approve_request(
        self,
        application_id: int,
        interest_rate: Any = None,
        amt_approved: Any = None,
        term_months: Any = None,
    ) -> LoanApplication:
        """
        Approve an ACTIVE request with underwritten terms.

        The request moves to APPROVED with nothing funded, funding disabled
        and a funding deadline FUNDING_WINDOW_DAYS out. If anything fails the
        ACTIVE record is left as it was.

        Returns:
            The APPROVED application

        Raises:
            InvalidArgumentError: If the approval data is invalid
            NotFoundError: If no ACTIVE request has this ID
        """
        terms = self.validate_approval_data({
            "interest_rate": interest_rate,
            "amt_approved": amt_approved,
            "term_months": term_months,
        })

        async with transaction(self.db):
            application = await self._get_for_transition(application_id, LoanStage.ACTIVE)

            approved_at = datetime.now(timezone.utc)
            application.interest_rate = terms["interest_rate"]
            application.amt_approved = terms["amt_approved"]
            application.term_months = terms["term_months"]
            application.installment_amt = calculate_installment(
                terms["amt_approved"], terms["interest_rate"], terms["term_months"]
            )
            application.amt_funded = Decimal("0.00")
            application.available_for_funding = False
            application.is_funded = False
            application.app_approved_date = approved_at
            application.funding_deadline = compute_funding_deadline(
                approved_at, self.funding_window_days
            )
            application.stage = LoanStage.APPROVED
            await self.db.flush()

        logger.info(
            f"Approved request {application_id}: {terms['amt_approved']} "
            f"over {terms['term_months']} months at {terms['interest_rate']}"
        )
        return application

    # ===== Cancellation =====

    async def reject_request(self, application_id: int) -> LoanApplication:
        """
        Reject an ACTIVE request during underwriting.

        Returns:
            The CANCELLED application with was_approved False

        Raises:
            NotFoundError: If no ACTIVE request has this ID
        """
        async with transaction(self.db):
            application = await self._get_for_transition(application_id, LoanStage.ACTIVE)
            self._mark_cancelled(application, CancellationReason.UNMET_CRITERIA, was_approved=False)
            await self.db.flush()

        logger.info(f"Rejected request {application_id}")
        return application

    async def cancel_request(
        self,
        application_id: int,
        reason: CancellationReason = CancellationReason.BORROWER_REQUEST,
    ) -> LoanApplication:
        """
        Cancel an APPROVED request that has not been fully funded.

        Pledged money goes back to each investor in the same transaction.

        Returns:
            The CANCELLED application with was_approved True

        Raises:
            NotFoundError: If no APPROVED request has this ID
        """
        async with transaction(self.db):
            application = await self._get_for_transition(application_id, LoanStage.APPROVED)
            await self.cancel_approved(application, reason)

        logger.info(f"Cancelled request {application_id} ({reason.value})")
        return application

    async def cancel_approved(
        self,
        application: LoanApplication,
        reason: CancellationReason,
    ) -> None:
        """
        Refund pledges and cancel a locked APPROVED application.

        Runs inside the caller's transaction.
        """
        refunded = Decimal("0.00")
        for pledge in await self.pledge_repo.get_for_application(application.id):
            await self.accounts.deposit(pledge.investor_id, pledge.pledged_amt)
            refunded += pledge.pledged_amt
        await self.pledge_repo.delete_for_application(application.id)

        if refunded:
            logger.info(f"Refunded {refunded} in pledges on request {application.id}")
        application.amt_funded = Decimal("0.00")
        application.available_for_funding = False
        self._mark_cancelled(application, reason, was_approved=True)
        await self.db.flush()

    # ===== Editing =====

    async def update_request(
        self,
        application_id: int,
        patch: Dict[str, Any],
        stage: LoanStage = LoanStage.ACTIVE,
    ) -> LoanApplication:
        """
        Update the editable fields of an ACTIVE or APPROVED request.

        Only the fields in UPDATABLE_FIELDS for the stage may be patched;
        the installment is recomputed afterwards.

        Args:
            application_id: ID of the application
            patch: Field names mapped to new values
            stage: Stage the application is expected to be in

        Returns:
            The updated application

        Raises:
            InvalidArgumentError: On a disallowed field or invalid value
            FundingStateError: If the stage does not allow edits
            NotFoundError: If the application or new purpose does not exist
        """
        allowed = UPDATABLE_FIELDS.get(stage)
        if allowed is None:
            raise FundingStateError(f"{stage.value} loans cannot be edited")
        if not patch:
            raise InvalidArgumentError("No fields to update")
        disallowed = sorted(set(patch) - allowed)
        if disallowed:
            raise InvalidArgumentError(f"Invalid data for update: {', '.join(disallowed)}")

        values = self._validate_patch(patch)

        async with transaction(self.db):
            application = await self._get_for_transition(application_id, stage)

            if "purpose_id" in values and not await self.purpose_repo.exists(values["purpose_id"]):
                raise NotFoundError(f"Purpose with id of {values['purpose_id']} does not exist")
            if "amt_approved" in values and values["amt_approved"] <= application.amt_funded:
                raise InvalidArgumentError(
                    "Approved amount must stay above the amount already funded"
                )

            for field, value in values.items():
                setattr(application, field, value)

            principal = (
                application.amt_approved
                if stage == LoanStage.APPROVED
                else application.amt_requested
            )
            application.installment_amt = calculate_installment(
                principal, application.interest_rate, application.term_months
            )
            await self.db.flush()

        logger.info(f"Updated request {application_id}: {sorted(values)}")
        return application

    async def delete_request(
        self,
        application_id: int,
        stage: LoanStage = LoanStage.ACTIVE,
    ) -> None:
        """
        Delete an ACTIVE request, or an APPROVED request with nothing pledged.

        Raises:
            NotFoundError: If no request in that stage has this ID
            FundingStateError: If the stage cannot be deleted or pledges exist
        """
        if stage not in UPDATABLE_FIELDS:
            raise FundingStateError(f"{stage.value} loans cannot be deleted")

        async with transaction(self.db):
            application = await self._get_for_transition(application_id, stage)
            if application.amt_funded > 0:
                raise FundingStateError(
                    f"Request {application_id} has pledges; cancel it instead"
                )
            await self.repo.delete(application_id)

        logger.info(f"Deleted {stage.value} request {application_id}")

    # ===== Queries =====

    async def get_request(
        self,
        application_id: int,
        stage: LoanStage = LoanStage.ACTIVE,
    ) -> LoanApplication:
        """
        Retrieve an application in the given stage.

        Raises:
            NotFoundError: If no application in that stage has this ID
        """
        application = await self.repo.get_in_stage(application_id, stage)
        if application is None:
            raise NotFoundError(f"No {stage.value} request exists with id: {application_id}")
        return application

    async def list_requests(
        self,
        stage: LoanStage = LoanStage.ACTIVE,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LoanApplication]:
        return await self.repo.get_by_stage(stage, skip=skip, limit=limit)

    async def list_requests_for_borrower(
        self,
        borrower_id: int,
        stage: Optional[LoanStage] = None,
    ) -> List[LoanApplication]:
        """
        Retrieve a borrower's applications.

        Raises:
            NotFoundError: If the borrower does not exist
        """
        if not await self.user_repo.exists(borrower_id):
            raise NotFoundError(f"No borrower with id: {borrower_id}")
        return await self.repo.get_by_borrower(borrower_id, stage=stage)

    # ===== Helpers =====

    async def _get_for_transition(self, application_id: int, stage: LoanStage) -> LoanApplication:
        application = await self.repo.get_in_stage(application_id, stage, for_update=True)
        if application is None:
            raise NotFoundError(f"No {stage.value} request exists with id: {application_id}")
        return application

    @staticmethod
    def _mark_cancelled(
        application: LoanApplication,
        reason: CancellationReason,
        was_approved: bool,
    ) -> None:
        application.stage = LoanStage.CANCELLED
        application.was_approved = was_approved
        application.cancellation_reason = reason
        application.app_cancelled_date = datetime.now(timezone.utc)
        if not was_approved:
            application.amt_approved = Decimal("0.00")

    @staticmethod
    def _validate_amount(value: Any, name: str) -> Decimal:
        amount = to_money(value, name)
        if amount <= 0:
            raise InvalidArgumentError(f"{name} must be greater than 0")
        return amount

    @staticmethod
    def _validate_term(value: Any) -> int:
        if isinstance(value, bool):
            raise InvalidArgumentError(f"term_months must be one of {list(LOAN_TERMS)}")
        try:
            term = int(str(value).strip())
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"term_months must be one of {list(LOAN_TERMS)}")
        if term not in LOAN_TERMS:
            raise InvalidArgumentError(f"term_months must be one of {list(LOAN_TERMS)}")
        return term

    def _validate_patch(self, patch: Dict[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field, value in patch.items():
            if field in ("amt_requested", "amt_approved"):
                values[field] = self._validate_amount(value, field)
            elif field == "interest_rate":
                rate = to_rate(value, "interest_rate")
                if rate <= 0 or rate > 1:
                    raise InvalidArgumentError(
                        "Interest rate must be greater than 0 and at most 1"
                    )
                values[field] = rate
            elif field == "term_months":
                values[field] = self._validate_term(value)
            elif field == "purpose_id":
                if isinstance(value, bool) or not isinstance(value, int):
                    raise InvalidArgumentError("purpose_id must be an integer")
                values[field] = value
        return values
