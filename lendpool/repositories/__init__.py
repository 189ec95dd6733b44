from .base import BaseRepository
from .funding_repository import InvestmentRepository, PledgeRepository
from .loan_repository import LoanRepository, PurposeRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "InvestmentRepository",
    "LoanRepository",
    "PledgeRepository",
    "PurposeRepository",
    "UserRepository",
]
