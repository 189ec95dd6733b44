"""Loan domain models: the staged application record and its funding relations."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lendpool.core.enums import CancellationReason, LoanStage
from lendpool.db.base import BaseModel


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Purpose(BaseModel):
    """Reference category describing what a loan is for."""

    __tablename__ = "purposes"

    title: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Purpose(id={self.id}, title={self.title!r})>"


class LoanApplication(BaseModel):
    """
    A loan application in whichever lifecycle stage it currently occupies.

    One row per application; the ``stage`` column is the discriminator and
    stage transitions update it in place, so an id can never be present in
    two stages at once. Columns that only make sense in later stages are
    nullable until the transition that fills them.
    """

    __tablename__ = "loan_applications"
    __table_args__ = (
        CheckConstraint("amt_requested > 0", name="ck_loan_applications_amt_requested_positive"),
        CheckConstraint("amt_funded >= 0", name="ck_loan_applications_amt_funded_non_negative"),
        CheckConstraint(
            "amt_approved IS NULL OR amt_funded <= amt_approved",
            name="ck_loan_applications_amt_funded_within_approved",
        ),
        CheckConstraint(
            "remaining_balance IS NULL OR remaining_balance >= 0",
            name="ck_loan_applications_remaining_balance_non_negative",
        ),
    )

    # Stage
    stage: Mapped[LoanStage] = mapped_column(
        SQLEnum(LoanStage, name="loan_stage", values_callable=_enum_values),
        default=LoanStage.ACTIVE,
        nullable=False,
        index=True,
    )

    # Foreign Keys
    borrower_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purpose_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("purposes.id"), nullable=False
    )

    # Loan Terms
    amt_requested: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amt_approved: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    amt_funded: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)
    installment_amt: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    remaining_balance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2), nullable=True
    )

    # Funding Flags
    available_for_funding: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_funded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Cancellation
    was_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    cancellation_reason: Mapped[Optional[CancellationReason]] = mapped_column(
        SQLEnum(CancellationReason, name="cancellation_reason", values_callable=_enum_values),
        nullable=True,
    )

    # Dates
    app_open_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    app_approved_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    funding_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    funded_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_off_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    app_cancelled_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    purpose: Mapped["Purpose"] = relationship("Purpose", lazy="selectin")
    pledges: Mapped[list["Pledge"]] = relationship(
        "Pledge",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="Pledge.investor_id",
    )
    investments: Mapped[list["Investment"]] = relationship(
        "Investment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="Investment.investor_id",
    )

    @property
    def funding_capacity(self) -> Decimal:
        """Amount still open to pledges."""
        if self.amt_approved is None:
            return Decimal("0.00")
        return self.amt_approved - self.amt_funded

    def __repr__(self) -> str:
        return (
            f"<LoanApplication(id={self.id}, stage={self.stage.value}, "
            f"borrower_id={self.borrower_id}, amt_funded={self.amt_funded})>"
        )


class Pledge(BaseModel):
    """Investor commitment toward an approved request that is not yet funded."""

    __tablename__ = "pledges"
    __table_args__ = (
        UniqueConstraint("application_id", "investor_id", name="uq_pledges_application_investor"),
        CheckConstraint("pledged_amt > 0", name="ck_pledges_pledged_amt_positive"),
    )

    application_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    investor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pledged_amt: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    application: Mapped["LoanApplication"] = relationship(
        "LoanApplication", back_populates="pledges"
    )

    def __repr__(self) -> str:
        return (
            f"<Pledge(application_id={self.application_id}, "
            f"investor_id={self.investor_id}, pledged_amt={self.pledged_amt})>"
        )


class Investment(BaseModel):
    """Investor's share in a funded loan, fixed at the moment of full funding."""

    __tablename__ = "investments"
    __table_args__ = (
        UniqueConstraint("loan_id", "investor_id", name="uq_investments_loan_investor"),
        CheckConstraint("invested_amt > 0", name="ck_investments_invested_amt_positive"),
    )

    loan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    investor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invested_amt: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    loan: Mapped["LoanApplication"] = relationship(
        "LoanApplication", back_populates="investments"
    )

    def __repr__(self) -> str:
        return (
            f"<Investment(loan_id={self.loan_id}, investor_id={self.investor_id}, "
            f"invested_amt={self.invested_amt})>"
        )
