"""User domain models: marketplace participants and their roles."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lendpool.core.enums import Role
from lendpool.db.base import BaseModel


class User(BaseModel):
    """Marketplace participant holding an account balance."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("account_balance >= 0", name="ck_users_account_balance_non_negative"),
    )

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Financial Details
    account_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    annual_income: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    other_monthly_debt: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2), nullable=True
    )

    # Relationships
    role_links: Mapped[list["UserRole"]] = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def roles(self) -> list[Role]:
        """Roles granted to the user."""
        return sorted((link.role for link in self.role_links), key=lambda r: r.value)

    def has_role(self, role: Role) -> bool:
        return any(link.role == role for link in self.role_links)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username!r}, balance={self.account_balance})>"


class UserRole(BaseModel):
    """Role granted to a user."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="role_links")

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role={self.role.value})>"
