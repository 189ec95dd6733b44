"""Read-only endpoints for closed records: paid-off loans and cancelled requests."""

from typing import Annotated, List

from fastapi import APIRouter, Query

from lendpool.core.enums import LoanStage
from lendpool.deps import SessionDep
from lendpool.models.schemas.loan import LoanApplicationResponse
from lendpool.services.installment_service import InstallmentService
from lendpool.services.request_service import RequestService

paid_off_router = APIRouter()
cancelled_router = APIRouter()


# ==================== Paid-off Loans ====================


@paid_off_router.get(
    "/",
    response_model=List[LoanApplicationResponse],
    summary="List paid-off loans",
)
async def list_paid_off_loans(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[LoanApplicationResponse]:
    loans = await InstallmentService(db).list_loans(LoanStage.PAID_OFF, skip=skip, limit=limit)
    return [LoanApplicationResponse.model_validate(loan) for loan in loans]


@paid_off_router.get(
    "/{loan_id}",
    response_model=LoanApplicationResponse,
    summary="Get paid-off loan by ID",
)
async def get_paid_off_loan(
    loan_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    loan = await InstallmentService(db).get_loan(loan_id, LoanStage.PAID_OFF)
    return LoanApplicationResponse.model_validate(loan)


# ==================== Cancelled Requests ====================


@cancelled_router.get(
    "/",
    response_model=List[LoanApplicationResponse],
    summary="List cancelled requests",
)
async def list_cancelled_requests(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[LoanApplicationResponse]:
    applications = await RequestService(db).list_requests(
        LoanStage.CANCELLED, skip=skip, limit=limit
    )
    return [LoanApplicationResponse.model_validate(a) for a in applications]


@cancelled_router.get(
    "/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Get cancelled request by ID",
)
async def get_cancelled_request(
    application_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await RequestService(db).get_request(application_id, LoanStage.CANCELLED)
    return LoanApplicationResponse.model_validate(application)
