"""Shared fixtures: a fresh in-memory database per test and seed helpers."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lendpool.core.enums import LoanStage, Role
from lendpool.db.base import Base
from lendpool.models import domain  # noqa: F401
from lendpool.models.domain.loan import Investment, LoanApplication, Purpose
from lendpool.services.account_service import AccountService
from lendpool.services.funding_service import FundingService
from lendpool.services.installment_service import InstallmentService
from lendpool.services.rate_provider import StaticRateProvider
from lendpool.services.request_service import RequestService

TEST_RATES = {
    6: Decimal("4.50"),
    12: Decimal("4.25"),
    24: Decimal("3.90"),
    36: Decimal("3.75"),
    48: Decimal("3.70"),
    60: Decimal("3.65"),
}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_provider():
    return StaticRateProvider(TEST_RATES)


@pytest.fixture
def accounts(db):
    return AccountService(db)


@pytest.fixture
def requests_service(db, rate_provider):
    return RequestService(db, rate_provider=rate_provider)


@pytest.fixture
def funding(db):
    return FundingService(db)


@pytest.fixture
def installments(db):
    return InstallmentService(db)


@pytest.fixture
def make_user(accounts):
    counter = {"n": 0}

    async def _make_user(roles=(Role.BORROWER,), balance="0.00", username=None):
        counter["n"] += 1
        user = await accounts.create_user(
            username=username or f"user{counter['n']}",
            first_name="Test",
            last_name=f"User{counter['n']}",
            roles=roles,
            account_balance=Decimal(balance),
        )
        return user.id

    return _make_user


@pytest.fixture
async def purpose_id(db):
    purpose = Purpose(title="Debt consolidation")
    db.add(purpose)
    await db.commit()
    return purpose.id


@pytest.fixture
def approved_request(requests_service, make_user, purpose_id):
    """Factory for an APPROVED request belonging to a fresh borrower."""

    async def _approved_request(amount="1000.00", rate="0.05", term=12, borrower_id=None):
        borrower_id = borrower_id or await make_user(roles=(Role.BORROWER,))
        application = await requests_service.create_request(
            borrower_id, amount, purpose_id, term
        )
        application = await requests_service.approve_request(
            application.id, interest_rate=rate, amt_approved=amount, term_months=term
        )
        return application

    return _approved_request


@pytest.fixture
def insert_funded_loan(db, purpose_id):
    """
    Factory inserting a FUNDED loan with given investments directly.

    Lets tests pin installment amounts that were not derived from the
    payment formula.
    """
    async def _insert(borrower_id, investments, rate, installment, term=24, remaining=None):
        funded = sum((Decimal(a) for a in investments.values()), Decimal("0.00"))
        now = datetime.now(timezone.utc)
        loan = LoanApplication(
            stage=LoanStage.FUNDED,
            borrower_id=borrower_id,
            purpose_id=purpose_id,
            amt_requested=funded,
            amt_approved=funded,
            amt_funded=funded,
            interest_rate=Decimal(rate),
            term_months=term,
            installment_amt=Decimal(installment),
            remaining_balance=Decimal(remaining) if remaining is not None else funded,
            available_for_funding=False,
            is_funded=True,
            app_open_date=now,
            app_approved_date=now,
            funded_date=now,
        )
        db.add(loan)
        await db.flush()
        for investor_id, amount in investments.items():
            db.add(Investment(loan_id=loan.id, investor_id=investor_id, invested_amt=Decimal(amount)))
        await db.commit()
        return loan.id

    return _insert
