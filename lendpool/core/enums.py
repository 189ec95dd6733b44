"""Core enums for type safety across the application."""

from enum import Enum

# Loan terms offered on the marketplace, in months
LOAN_TERMS: tuple[int, ...] = (6, 12, 24, 36, 48, 60)


class LoanStage(str, Enum):
    """Lifecycle stage of a loan application."""

    ACTIVE = "Active"
    APPROVED = "Approved"
    FUNDED = "Funded"
    PAID_OFF = "PaidOff"
    CANCELLED = "Cancelled"


class Role(str, Enum):
    """Marketplace roles a user can hold."""

    ADMIN = "admin"
    BORROWER = "borrower"
    INVESTOR = "investor"


class CancellationReason(str, Enum):
    """Why a request left the pipeline before funding."""

    BORROWER_REQUEST = "borrower_request"
    UNMET_CRITERIA = "unmet_criteria"
    FUNDING_EXPIRED = "funding_expired"
    ADMIN_ACTION = "admin_action"
