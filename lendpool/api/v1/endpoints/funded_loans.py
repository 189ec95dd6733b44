"""Funded loan endpoints: installments, payoff and repayment schedules."""

import logging
from typing import Annotated, List

from fastapi import APIRouter, HTTPException, Query, status

from lendpool.core.enums import LoanStage
from lendpool.core.exceptions import LendingError
from lendpool.deps import SessionDep
from lendpool.models.schemas.loan import (
    InstallmentPaymentResponse,
    InvestmentResponse,
    LoanApplicationResponse,
    LoanScheduleResponse,
    ScheduleEntry,
)
from lendpool.services.funding_service import FundingService
from lendpool.services.installment_service import InstallmentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=List[LoanApplicationResponse],
    summary="List funded loans",
)
async def list_loans(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[LoanApplicationResponse]:
    loans = await InstallmentService(db).list_loans(LoanStage.FUNDED, skip=skip, limit=limit)
    return [LoanApplicationResponse.model_validate(loan) for loan in loans]


@router.get(
    "/{loan_id}",
    response_model=LoanApplicationResponse,
    summary="Get funded loan by ID",
)
async def get_loan(
    loan_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    loan = await InstallmentService(db).get_loan(loan_id, LoanStage.FUNDED)
    return LoanApplicationResponse.model_validate(loan)


@router.post(
    "/{loan_id}/pay-installment",
    response_model=InstallmentPaymentResponse,
    summary="Pay one installment",
    description="Collect an installment from the borrower and distribute it to investors",
)
async def pay_installment(
    loan_id: int,
    db: SessionDep,
) -> InstallmentPaymentResponse:
    """
    Pay one installment on a funded loan.

    The final installment charges only the outstanding balance plus its
    interest and archives the loan as paid off.
    """
    try:
        payment = await InstallmentService(db).pay_installment(loan_id)
        return InstallmentPaymentResponse.model_validate(payment)

    except LendingError:
        raise
    except Exception as e:
        logger.error(f"Error paying installment on loan {loan_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to pay installment",
        )


@router.post(
    "/{loan_id}/payoff",
    response_model=LoanApplicationResponse,
    summary="Archive a loan as paid off",
)
async def payoff_loan(
    loan_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    loan = await InstallmentService(db).payoff_loan(loan_id)
    return LoanApplicationResponse.model_validate(loan)


@router.get(
    "/{loan_id}/investments",
    response_model=List[InvestmentResponse],
    summary="List investments in a loan",
)
async def list_investments(
    loan_id: int,
    db: SessionDep,
) -> List[InvestmentResponse]:
    investments = await FundingService(db).list_investments(loan_id)
    return [InvestmentResponse.model_validate(i) for i in investments]


@router.get(
    "/{loan_id}/schedule",
    response_model=LoanScheduleResponse,
    summary="Project remaining installments",
)
async def get_schedule(
    loan_id: int,
    db: SessionDep,
) -> LoanScheduleResponse:
    schedule = await InstallmentService(db).amortization_schedule(loan_id)
    return LoanScheduleResponse(
        loan_id=loan_id,
        installments=[ScheduleEntry(**entry) for entry in schedule],
    )
