"""Pydantic schemas for users and account movements."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lendpool.core.enums import Role


# ==================== User Schemas ====================


class UserBase(BaseModel):
    """Base schema for user with common fields."""

    username: str = Field(..., min_length=1, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    annual_income: Optional[Decimal] = Field(None, ge=0)
    other_monthly_debt: Optional[Decimal] = Field(None, ge=0)


class UserCreate(UserBase):
    """Schema for registering a user."""

    roles: List[Role] = Field(..., min_length=1)
    account_balance: Decimal = Field(Decimal("0.00"), ge=0)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Reject usernames that are only whitespace."""
        if not v.strip():
            raise ValueError("Username must not be blank")
        return v.strip()


class UserResponse(UserBase):
    """Schema for user response."""

    id: int
    roles: List[Role]
    account_balance: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== Account Schemas ====================


class AmountRequest(BaseModel):
    """Schema for a deposit or withdrawal."""

    amount: Decimal = Field(..., gt=0)


class BalanceResponse(BaseModel):
    """Schema for an account balance after a movement."""

    user_id: int
    account_balance: Decimal
