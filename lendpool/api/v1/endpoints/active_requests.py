"""Active loan request endpoints: opening and underwriting requests."""

import logging
from typing import Annotated, List

from fastapi import APIRouter, HTTPException, Query, Response, status

from lendpool.core.enums import LoanStage, Role
from lendpool.core.exceptions import LendingError
from lendpool.deps import RateProviderDep, SessionDep
from lendpool.models.schemas.loan import (
    ActiveRequestUpdate,
    ApprovalRequest,
    LoanApplicationResponse,
    LoanRequestCreate,
)
from lendpool.services.account_service import AccountService
from lendpool.services.request_service import RequestService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    response_model=LoanApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a loan request",
    description="Open a request priced at the current market rate plus the marketplace margin",
)
async def create_request(
    request_data: LoanRequestCreate,
    db: SessionDep,
    rate_provider: RateProviderDep,
) -> LoanApplicationResponse:
    """
    Open a new loan request.

    The borrower must hold the borrower role. The interest rate is the
    market rate for the term plus the profit margin, and the installment is
    computed from it.
    """
    try:
        accounts = AccountService(db)
        borrower = await accounts.get_user(request_data.borrower_id)
        accounts.require_role(borrower, Role.BORROWER)

        service = RequestService(db, rate_provider=rate_provider)
        application = await service.create_request(
            borrower_id=request_data.borrower_id,
            amt_requested=request_data.amt_requested,
            purpose_id=request_data.purpose_id,
            term_months=request_data.term_months,
        )
        return LoanApplicationResponse.model_validate(application)

    except LendingError:
        raise
    except Exception as e:
        logger.error(f"Error opening loan request: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to open loan request",
        )


@router.get(
    "/",
    response_model=List[LoanApplicationResponse],
    summary="List active requests",
)
async def list_requests(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[LoanApplicationResponse]:
    applications = await RequestService(db).list_requests(LoanStage.ACTIVE, skip=skip, limit=limit)
    return [LoanApplicationResponse.model_validate(a) for a in applications]


@router.get(
    "/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Get active request by ID",
)
async def get_request(
    application_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await RequestService(db).get_request(application_id, LoanStage.ACTIVE)
    return LoanApplicationResponse.model_validate(application)


@router.patch(
    "/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Update an active request",
)
async def update_request(
    application_id: int,
    update_data: ActiveRequestUpdate,
    db: SessionDep,
) -> LoanApplicationResponse:
    """
    Update an active request.

    Only provided fields are changed; the installment is recomputed.
    """
    application = await RequestService(db).update_request(
        application_id,
        update_data.model_dump(exclude_unset=True),
        stage=LoanStage.ACTIVE,
    )
    return LoanApplicationResponse.model_validate(application)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an active request",
)
async def delete_request(
    application_id: int,
    db: SessionDep,
) -> Response:
    await RequestService(db).delete_request(application_id, LoanStage.ACTIVE)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{application_id}/approve",
    response_model=LoanApplicationResponse,
    summary="Approve an active request",
    description="Approve with underwritten terms; the request opens a funding window",
)
async def approve_request(
    application_id: int,
    approval: ApprovalRequest,
    db: SessionDep,
) -> LoanApplicationResponse:
    try:
        application = await RequestService(db).approve_request(
            application_id,
            interest_rate=approval.interest_rate,
            amt_approved=approval.amt_approved,
            term_months=approval.term_months,
        )
        return LoanApplicationResponse.model_validate(application)

    except LendingError:
        raise
    except Exception as e:
        logger.error(f"Error approving request {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve request",
        )


@router.post(
    "/{application_id}/reject",
    response_model=LoanApplicationResponse,
    summary="Reject an active request",
)
async def reject_request(
    application_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await RequestService(db).reject_request(application_id)
    return LoanApplicationResponse.model_validate(application)
