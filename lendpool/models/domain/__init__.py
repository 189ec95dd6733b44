"""Domain models for the application."""

from lendpool.models.domain.loan import Investment, LoanApplication, Pledge, Purpose
from lendpool.models.domain.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Purpose",
    "LoanApplication",
    "Pledge",
    "Investment",
]
