"""User and account endpoints."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from lendpool.core.enums import LoanStage
from lendpool.core.exceptions import LendingError
from lendpool.deps import SessionDep
from lendpool.models.schemas.loan import (
    InvestmentResponse,
    LoanApplicationResponse,
    PledgeResponse,
)
from lendpool.models.schemas.user import (
    AmountRequest,
    BalanceResponse,
    UserCreate,
    UserResponse,
)
from lendpool.services.account_service import AccountService
from lendpool.services.funding_service import FundingService
from lendpool.services.installment_service import InstallmentService
from lendpool.services.request_service import RequestService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
    description="Register a marketplace user with one or more roles",
)
async def create_user(
    user_data: UserCreate,
    db: SessionDep,
) -> UserResponse:
    try:
        service = AccountService(db)
        user = await service.create_user(
            username=user_data.username,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            roles=user_data.roles,
            email=user_data.email,
            account_balance=user_data.account_balance,
            annual_income=user_data.annual_income,
            other_monthly_debt=user_data.other_monthly_debt,
        )
        return UserResponse.model_validate(user)

    except LendingError:
        raise
    except Exception as e:
        logger.error(f"Error creating user: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user",
        )


@router.get(
    "/",
    response_model=List[UserResponse],
    summary="List users",
)
async def list_users(
    db: SessionDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> List[UserResponse]:
    users = await AccountService(db).list_users(skip=skip, limit=limit)
    return [UserResponse.model_validate(u) for u in users]


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID",
)
async def get_user(
    user_id: int,
    db: SessionDep,
) -> UserResponse:
    user = await AccountService(db).get_user(user_id)
    return UserResponse.model_validate(user)


@router.post(
    "/{user_id}/deposit",
    response_model=BalanceResponse,
    summary="Deposit funds",
)
async def deposit(
    user_id: int,
    body: AmountRequest,
    db: SessionDep,
) -> BalanceResponse:
    balance = await AccountService(db).deposit_funds(user_id, body.amount)
    return BalanceResponse(user_id=user_id, account_balance=balance)


@router.post(
    "/{user_id}/withdraw",
    response_model=BalanceResponse,
    summary="Withdraw funds",
)
async def withdraw(
    user_id: int,
    body: AmountRequest,
    db: SessionDep,
) -> BalanceResponse:
    balance = await AccountService(db).withdraw_funds(user_id, body.amount)
    return BalanceResponse(user_id=user_id, account_balance=balance)


@router.get(
    "/{user_id}/requests",
    response_model=List[LoanApplicationResponse],
    summary="List a borrower's requests",
    description="Every application the user opened, newest first, optionally filtered by stage",
)
async def list_user_requests(
    user_id: int,
    db: SessionDep,
    stage: Annotated[Optional[LoanStage], Query(description="Filter by stage")] = None,
) -> List[LoanApplicationResponse]:
    applications = await RequestService(db).list_requests_for_borrower(user_id, stage=stage)
    return [LoanApplicationResponse.model_validate(a) for a in applications]


@router.get(
    "/{user_id}/loans",
    response_model=List[LoanApplicationResponse],
    summary="List a borrower's loans",
)
async def list_user_loans(
    user_id: int,
    db: SessionDep,
) -> List[LoanApplicationResponse]:
    loans = await InstallmentService(db).list_loans_for_borrower(user_id)
    return [LoanApplicationResponse.model_validate(loan) for loan in loans]


@router.get(
    "/{user_id}/pledges",
    response_model=List[PledgeResponse],
    summary="List an investor's open pledges",
)
async def list_user_pledges(
    user_id: int,
    db: SessionDep,
) -> List[PledgeResponse]:
    pledges = await FundingService(db).list_pledges_for_investor(user_id)
    return [PledgeResponse.model_validate(p) for p in pledges]


@router.get(
    "/{user_id}/investments",
    response_model=List[InvestmentResponse],
    summary="List an investor's investments",
)
async def list_user_investments(
    user_id: int,
    db: SessionDep,
) -> List[InvestmentResponse]:
    investments = await FundingService(db).list_investments_for_investor(user_id)
    return [InvestmentResponse.model_validate(i) for i in investments]
