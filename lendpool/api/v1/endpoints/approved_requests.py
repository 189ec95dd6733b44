"""Approved request endpoints: funding windows and investor pledges."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from lendpool.core.enums import CancellationReason, LoanStage, Role
from lendpool.core.exceptions import LendingError
from lendpool.deps import SessionDep
from lendpool.models.schemas.loan import (
    ApprovedRequestUpdate,
    CancelRequest,
    ExpiredRequestsResponse,
    FundRequest,
    LoanApplicationResponse,
    PledgeResponse,
)
from lendpool.services.account_service import AccountService
from lendpool.services.funding_service import FundingService
from lendpool.services.request_service import RequestService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=List[LoanApplicationResponse],
    summary="List approved requests",
)
async def list_requests(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[LoanApplicationResponse]:
    applications = await RequestService(db).list_requests(
        LoanStage.APPROVED, skip=skip, limit=limit
    )
    return [LoanApplicationResponse.model_validate(a) for a in applications]


@router.post(
    "/expire-overdue",
    response_model=ExpiredRequestsResponse,
    summary="Expire overdue requests",
    description="Cancel approved requests past their funding deadline and refund their pledges",
)
async def expire_overdue(db: SessionDep) -> ExpiredRequestsResponse:
    expired = await FundingService(db).expire_overdue_requests()
    return ExpiredRequestsResponse(
        expired_count=len(expired),
        expired_ids=[a.id for a in expired],
    )


@router.get(
    "/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Get approved request by ID",
)
async def get_request(
    application_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await RequestService(db).get_request(application_id, LoanStage.APPROVED)
    return LoanApplicationResponse.model_validate(application)


@router.patch(
    "/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Update an approved request",
)
async def update_request(
    application_id: int,
    update_data: ApprovedRequestUpdate,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await RequestService(db).update_request(
        application_id,
        update_data.model_dump(exclude_unset=True),
        stage=LoanStage.APPROVED,
    )
    return LoanApplicationResponse.model_validate(application)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an approved request with no pledges",
)
async def delete_request(
    application_id: int,
    db: SessionDep,
) -> Response:
    await RequestService(db).delete_request(application_id, LoanStage.APPROVED)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{application_id}/enable-funding",
    response_model=LoanApplicationResponse,
    summary="Open a request to investors",
)
async def enable_funding(
    application_id: int,
    db: SessionDep,
) -> LoanApplicationResponse:
    application = await FundingService(db).enable_funding(application_id)
    return LoanApplicationResponse.model_validate(application)


@router.post(
    "/{application_id}/fund",
    response_model=LoanApplicationResponse,
    summary="Pledge funds to a request",
    description="Pledge an investor's money; the pledge that completes funding creates the loan",
)
async def fund_request(
    application_id: int,
    fund_data: FundRequest,
    db: SessionDep,
) -> LoanApplicationResponse:
    """
    Pledge funds toward an approved request.

    The investor must hold the investor role. Returns the request, which is
    a funded loan if this pledge covered the remaining amount.
    """
    try:
        accounts = AccountService(db)
        investor = await accounts.get_user(fund_data.investor_id)
        accounts.require_role(investor, Role.INVESTOR)

        application = await FundingService(db).fund_request(
            application_id,
            investor_id=fund_data.investor_id,
            amount=fund_data.amount,
        )
        return LoanApplicationResponse.model_validate(application)

    except LendingError:
        raise
    except Exception as e:
        logger.error(f"Error funding request {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fund request",
        )


@router.post(
    "/{application_id}/cancel",
    response_model=LoanApplicationResponse,
    summary="Cancel an approved request",
    description="Cancel a request that is not fully funded and refund its pledges",
)
async def cancel_request(
    application_id: int,
    db: SessionDep,
    cancel_data: Optional[CancelRequest] = None,
) -> LoanApplicationResponse:
    reason = cancel_data.reason if cancel_data else CancellationReason.BORROWER_REQUEST
    application = await RequestService(db).cancel_request(application_id, reason)
    return LoanApplicationResponse.model_validate(application)


@router.get(
    "/{application_id}/pledges",
    response_model=List[PledgeResponse],
    summary="List pledges on a request",
)
async def list_pledges(
    application_id: int,
    db: SessionDep,
) -> List[PledgeResponse]:
    pledges = await FundingService(db).list_pledges(application_id)
    return [PledgeResponse.model_validate(p) for p in pledges]
