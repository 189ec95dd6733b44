"""
Concurrent funding against PostgreSQL.

SQLite serializes every writer on one connection, so row locking is only
meaningful on a real server. Set LENDPOOL_TEST_POSTGRES_URL (an empty
scratch database, postgresql+asyncpg://...) to run these tests.
"""

import asyncio
import os
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from lendpool.core.enums import Role
from lendpool.core.exceptions import FundingCapacityError
from lendpool.db.base import Base
from lendpool.models import domain  # noqa: F401
from lendpool.models.domain.loan import Purpose
from lendpool.services.account_service import AccountService
from lendpool.services.funding_service import FundingService
from lendpool.services.request_service import RequestService

POSTGRES_URL = os.environ.get("LENDPOOL_TEST_POSTGRES_URL")

pytestmark = pytest.mark.skipif(
    not POSTGRES_URL, reason="LENDPOOL_TEST_POSTGRES_URL is not set"
)


@pytest.fixture
async def pg_sessions():
    engine = create_async_engine(POSTGRES_URL, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def test_concurrent_pledges_cannot_overfund(pg_sessions, rate_provider):
    async with pg_sessions() as db:
        accounts = AccountService(db)
        borrower = await accounts.create_user("borrower", "Bo", "Rower", [Role.BORROWER])
        first = await accounts.create_user(
            "first", "First", "Investor", [Role.INVESTOR], account_balance="800.00"
        )
        second = await accounts.create_user(
            "second", "Second", "Investor", [Role.INVESTOR], account_balance="800.00"
        )
        purpose = Purpose(title="Home improvement")
        db.add(purpose)
        await db.commit()

        requests = RequestService(db, rate_provider=rate_provider)
        application = await requests.create_request(borrower.id, "1000.00", purpose.id, 12)
        await requests.approve_request(
            application.id, interest_rate="0.05", amt_approved="1000.00", term_months=12
        )
        await FundingService(db).enable_funding(application.id)
        application_id, investor_ids = application.id, (first.id, second.id)

    async def pledge(investor_id):
        async with pg_sessions() as db:
            return await FundingService(db).fund_request(application_id, investor_id, "600.00")

    results = await asyncio.gather(*(pledge(i) for i in investor_ids), return_exceptions=True)

    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(rejected) == 1
    assert isinstance(rejected[0], FundingCapacityError)

    async with pg_sessions() as db:
        funding = FundingService(db)
        pledges = await funding.list_pledges(application_id)
        assert [p.pledged_amt for p in pledges] == [Decimal("600.00")]

        balances = {i: await AccountService(db).get_balance(i) for i in investor_ids}
        assert sorted(balances.values()) == [Decimal("200.00"), Decimal("800.00")]
        assert balances[pledges[0].investor_id] == Decimal("200.00")
