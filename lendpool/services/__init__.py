"""Service layer for business logic."""

from lendpool.services.account_service import AccountService
from lendpool.services.funding_service import FundingService
from lendpool.services.installment_service import InstallmentPayment, InstallmentService
from lendpool.services.request_service import RequestService

__all__ = [
    "AccountService",
    "FundingService",
    "InstallmentPayment",
    "InstallmentService",
    "RequestService",
]
