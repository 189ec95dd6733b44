"""Pydantic schemas for loan requests, funding and repayment."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from lendpool.core.enums import CancellationReason, LoanStage


# ==================== Purpose Schemas ====================


class PurposeCreate(BaseModel):
    """Schema for adding a loan purpose."""

    title: str = Field(..., min_length=1, max_length=100)


class PurposeResponse(PurposeCreate):
    """Schema for loan purpose response."""

    id: int

    model_config = ConfigDict(from_attributes=True)


# ==================== Request Schemas ====================


class LoanRequestCreate(BaseModel):
    """Schema for opening a loan request."""

    borrower_id: int
    amt_requested: Decimal = Field(..., gt=0)
    purpose_id: int
    term_months: int


class ActiveRequestUpdate(BaseModel):
    """Schema for editing an active request (all fields optional)."""

    amt_requested: Optional[Decimal] = Field(None, gt=0)
    purpose_id: Optional[int] = None
    interest_rate: Optional[Decimal] = Field(None, gt=0, le=1)
    term_months: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class ApprovedRequestUpdate(BaseModel):
    """Schema for editing an approved request (all fields optional)."""

    amt_approved: Optional[Decimal] = Field(None, ge=1)
    purpose_id: Optional[int] = None
    interest_rate: Optional[Decimal] = Field(None, gt=0, le=1)
    term_months: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class ApprovalRequest(BaseModel):
    """Underwritten terms for approving a request."""

    interest_rate: Decimal
    amt_approved: Decimal
    term_months: int


class CancelRequest(BaseModel):
    """Schema for cancelling an approved request."""

    reason: CancellationReason = CancellationReason.BORROWER_REQUEST


class FundRequest(BaseModel):
    """Schema for an investor pledge."""

    investor_id: int
    amount: Decimal = Field(..., gt=0)


# ==================== Loan Schemas ====================


class LoanApplicationResponse(BaseModel):
    """Schema for a loan application in any stage."""

    id: int
    stage: LoanStage
    borrower_id: int
    purpose_id: int
    amt_requested: Decimal
    amt_approved: Optional[Decimal] = None
    amt_funded: Decimal
    interest_rate: Decimal
    term_months: int
    installment_amt: Decimal
    remaining_balance: Optional[Decimal] = None
    available_for_funding: bool
    is_funded: bool
    was_approved: Optional[bool] = None
    cancellation_reason: Optional[CancellationReason] = None
    app_open_date: datetime
    app_approved_date: Optional[datetime] = None
    funding_deadline: Optional[datetime] = None
    funded_date: Optional[datetime] = None
    paid_off_date: Optional[datetime] = None
    app_cancelled_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PledgeResponse(BaseModel):
    """Schema for a pledge on an approved request."""

    id: int
    application_id: int
    investor_id: int
    pledged_amt: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvestmentResponse(BaseModel):
    """Schema for an investor's share in a funded loan."""

    id: int
    loan_id: int
    investor_id: int
    invested_amt: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InstallmentPaymentResponse(BaseModel):
    """Schema for the outcome of an installment payment."""

    loan: LoanApplicationResponse
    amount_paid: Decimal
    interest: Decimal
    principal: Decimal
    balance_before: Decimal
    distributions: Dict[int, Decimal]
    paid_off: bool

    model_config = ConfigDict(from_attributes=True)


class ScheduleEntry(BaseModel):
    """One projected installment."""

    payment: Decimal
    interest: Decimal
    principal: Decimal
    remaining_balance: Decimal


class LoanScheduleResponse(BaseModel):
    """Projected remaining installments of a funded loan."""

    loan_id: int
    installments: List[ScheduleEntry]


class ExpiredRequestsResponse(BaseModel):
    """Requests cancelled because their funding window closed."""

    expired_count: int
    expired_ids: List[int]


# ==================== Reference Schemas ====================


class TermsResponse(BaseModel):
    """Loan terms offered, in months."""

    terms: List[int]
