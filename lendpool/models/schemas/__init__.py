"""Pydantic schemas for API validation and serialization."""

from lendpool.models.schemas.loan import (
    ActiveRequestUpdate,
    ApprovalRequest,
    ApprovedRequestUpdate,
    CancelRequest,
    ExpiredRequestsResponse,
    FundRequest,
    InstallmentPaymentResponse,
    InvestmentResponse,
    LoanApplicationResponse,
    LoanRequestCreate,
    LoanScheduleResponse,
    PledgeResponse,
    PurposeCreate,
    PurposeResponse,
    ScheduleEntry,
    TermsResponse,
)
from lendpool.models.schemas.user import (
    AmountRequest,
    BalanceResponse,
    UserCreate,
    UserResponse,
)

__all__ = [
    # User schemas
    "UserCreate",
    "UserResponse",
    "AmountRequest",
    "BalanceResponse",
    # Request schemas
    "LoanRequestCreate",
    "ActiveRequestUpdate",
    "ApprovedRequestUpdate",
    "ApprovalRequest",
    "CancelRequest",
    "FundRequest",
    # Loan schemas
    "LoanApplicationResponse",
    "PledgeResponse",
    "InvestmentResponse",
    "InstallmentPaymentResponse",
    "ScheduleEntry",
    "LoanScheduleResponse",
    "ExpiredRequestsResponse",
    # Reference schemas
    "PurposeCreate",
    "PurposeResponse",
    "TermsResponse",
]
