"""
Funding tests.

Money moved by pledges is conserved: whatever leaves investor accounts is
either held as pledges on the request or, once the request is fully
funded, credited to the borrower and recorded as investments.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from lendpool.core.enums import CancellationReason, LoanStage, Role
from lendpool.core.exceptions import (
    FundingCapacityError,
    FundingStateError,
    InsufficientFundsError,
    InvalidArgumentError,
    NotFoundError,
)


@pytest.fixture
def investor(make_user):
    async def _investor(balance="5000.00"):
        return await make_user(roles=(Role.INVESTOR,), balance=balance)

    return _investor


@pytest.fixture
def open_request(approved_request, funding):
    """APPROVED request that has been opened to investors."""

    async def _open_request(**kwargs):
        application = await approved_request(**kwargs)
        return await funding.enable_funding(application.id)

    return _open_request


# ==================== Enabling ====================


async def test_enable_funding(funding, approved_request):
    application = await approved_request()
    assert application.available_for_funding is False

    enabled = await funding.enable_funding(application.id)

    assert enabled.available_for_funding is True
    assert enabled.stage == LoanStage.APPROVED


async def test_enable_funding_requires_approved_request(funding):
    with pytest.raises(NotFoundError):
        await funding.enable_funding(999)


async def test_fund_before_enabling_is_rejected(funding, approved_request, investor, accounts):
    application = await approved_request()
    app_id = application.id
    investor_id = await investor()

    with pytest.raises(FundingStateError):
        await funding.fund_request(app_id, investor_id, "100")

    assert await accounts.get_balance(investor_id) == Decimal("5000.00")
    assert await funding.list_pledges(app_id) == []


# ==================== Pledging ====================


async def test_partial_funding_holds_pledge(funding, open_request, investor, accounts):
    application = await open_request(amount="1000.00")
    investor_id = await investor()

    funded = await funding.fund_request(application.id, investor_id, "250.00")

    assert funded.stage == LoanStage.APPROVED
    assert funded.amt_funded == Decimal("250.00")
    assert funded.is_funded is False
    assert await accounts.get_balance(investor_id) == Decimal("4750.00")

    pledges = await funding.list_pledges(application.id)
    assert [(p.investor_id, p.pledged_amt) for p in pledges] == [(investor_id, Decimal("250.00"))]


async def test_repeat_pledges_accumulate(funding, open_request, investor):
    application = await open_request(amount="1000.00")
    investor_id = await investor()

    await funding.fund_request(application.id, investor_id, "100.00")
    funded = await funding.fund_request(application.id, investor_id, "150.00")

    assert funded.amt_funded == Decimal("250.00")
    pledges = await funding.list_pledges(application.id)
    assert len(pledges) == 1
    assert pledges[0].pledged_amt == Decimal("250.00")


async def test_full_funding_creates_loan(funding, open_request, investor, accounts, db):
    application = await open_request(amount="1000.00")
    borrower_id = application.borrower_id
    first = await investor(balance="600.00")
    second = await investor(balance="1000.00")

    await funding.fund_request(application.id, first, "600.00")
    loan = await funding.fund_request(application.id, second, "400.00")

    assert loan.stage == LoanStage.FUNDED
    assert loan.is_funded is True
    assert loan.available_for_funding is False
    assert loan.funded_date is not None
    assert loan.amt_funded == Decimal("1000.00")
    assert loan.remaining_balance == Decimal("1000.00")

    investments = await funding.list_investments(loan.id)
    assert {(i.investor_id, i.invested_amt) for i in investments} == {
        (first, Decimal("600.00")),
        (second, Decimal("400.00")),
    }
    assert sum(i.invested_amt for i in investments) == loan.amt_funded

    assert await accounts.get_balance(borrower_id) == Decimal("1000.00")
    assert await accounts.get_balance(first) == Decimal("0.00")
    assert await accounts.get_balance(second) == Decimal("600.00")
    assert await funding.list_pledges_for_investor(first) == []

    with pytest.raises(NotFoundError):
        await funding.list_pledges(loan.id)


async def test_funded_loan_cannot_be_funded_again(funding, open_request, investor):
    application = await open_request(amount="100.00")
    app_id = application.id
    investor_id = await investor()
    await funding.fund_request(app_id, investor_id, "100.00")

    with pytest.raises(NotFoundError):
        await funding.fund_request(app_id, investor_id, "1.00")


async def test_over_funding_is_rejected_without_mutation(funding, open_request, investor, accounts, requests_service):
    application = await open_request(amount="1000.00")
    app_id = application.id
    investor_id = await investor()
    await funding.fund_request(app_id, investor_id, "900.00")

    with pytest.raises(FundingCapacityError) as exc_info:
        await funding.fund_request(app_id, investor_id, "100.01")
    assert isinstance(exc_info.value, InsufficientFundsError)

    unchanged = await requests_service.get_request(app_id, LoanStage.APPROVED)
    assert unchanged.amt_funded == Decimal("900.00")
    assert await accounts.get_balance(investor_id) == Decimal("4100.00")
    assert [p.pledged_amt for p in await funding.list_pledges(app_id)] == [Decimal("900.00")]


async def test_insufficient_investor_funds_rejected_without_mutation(
    funding, open_request, investor, accounts, requests_service
):
    application = await open_request(amount="1000.00")
    app_id = application.id
    investor_id = await investor(balance="100.00")

    with pytest.raises(InsufficientFundsError) as exc_info:
        await funding.fund_request(app_id, investor_id, "200.00")
    assert not isinstance(exc_info.value, FundingCapacityError)

    unchanged = await requests_service.get_request(app_id, LoanStage.APPROVED)
    assert unchanged.amt_funded == Decimal("0.00")
    assert await accounts.get_balance(investor_id) == Decimal("100.00")
    assert await funding.list_pledges(app_id) == []


async def test_fund_unknown_investor_or_request(funding, open_request, investor):
    application = await open_request()
    app_id = application.id
    investor_id = await investor()

    with pytest.raises(NotFoundError):
        await funding.fund_request(app_id, 999, "10.00")
    with pytest.raises(NotFoundError):
        await funding.fund_request(999, investor_id, "10.00")


@pytest.mark.parametrize("amount", ["0", "-1"])
async def test_fund_rejects_non_positive_amount(funding, open_request, investor, amount):
    application = await open_request()
    investor_id = await investor()

    with pytest.raises(InvalidArgumentError):
        await funding.fund_request(application.id, investor_id, amount)


# ==================== Pledges on cancel, delete, edit ====================


async def test_cancel_refunds_pledges(funding, open_request, investor, accounts, requests_service):
    application = await open_request(amount="1000.00")
    first = await investor()
    second = await investor()
    await funding.fund_request(application.id, first, "300.00")
    await funding.fund_request(application.id, second, "200.00")

    cancelled = await requests_service.cancel_request(application.id)

    assert cancelled.stage == LoanStage.CANCELLED
    assert cancelled.cancellation_reason == CancellationReason.BORROWER_REQUEST
    assert cancelled.amt_funded == Decimal("0.00")
    assert await accounts.get_balance(first) == Decimal("5000.00")
    assert await accounts.get_balance(second) == Decimal("5000.00")
    assert await funding.list_pledges_for_investor(first) == []


async def test_delete_approved_with_pledges_is_rejected(funding, open_request, investor, requests_service):
    application = await open_request(amount="1000.00")
    app_id = application.id
    await funding.fund_request(app_id, await investor(), "10.00")

    with pytest.raises(FundingStateError):
        await requests_service.delete_request(app_id, LoanStage.APPROVED)

    assert (await requests_service.get_request(app_id, LoanStage.APPROVED)).amt_funded == Decimal("10.00")


async def test_approved_amount_must_stay_above_funded(funding, open_request, investor, requests_service):
    application = await open_request(amount="1000.00")
    app_id = application.id
    await funding.fund_request(app_id, await investor(), "400.00")

    with pytest.raises(InvalidArgumentError):
        await requests_service.update_request(app_id, {"amt_approved": "400"}, stage=LoanStage.APPROVED)

    updated = await requests_service.update_request(
        app_id, {"amt_approved": "400.01"}, stage=LoanStage.APPROVED
    )
    assert updated.funding_capacity == Decimal("0.01")


# ==================== Expiry ====================


async def test_expire_overdue_requests(funding, open_request, approved_request, investor, accounts, requests_service):
    pledged = await open_request(amount="1000.00")
    idle = await approved_request(amount="500.00")
    pledged_id, idle_id = pledged.id, idle.id
    investor_id = await investor()
    await funding.fund_request(pledged_id, investor_id, "250.00")

    assert await funding.expire_overdue_requests(now=datetime.now(timezone.utc)) == []

    expired = await funding.expire_overdue_requests(
        now=datetime.now(timezone.utc) + timedelta(days=31)
    )

    assert sorted(a.id for a in expired) == sorted([pledged_id, idle_id])
    for app_id in (pledged_id, idle_id):
        cancelled = await requests_service.get_request(app_id, LoanStage.CANCELLED)
        assert cancelled.cancellation_reason == CancellationReason.FUNDING_EXPIRED
        assert cancelled.was_approved is True
    assert await accounts.get_balance(investor_id) == Decimal("5000.00")


# ==================== Investor views ====================


async def test_investor_views(funding, open_request, investor):
    loan_request = await open_request(amount="100.00")
    open_one = await open_request(amount="1000.00")
    investor_id = await investor()

    await funding.fund_request(loan_request.id, investor_id, "100.00")
    await funding.fund_request(open_one.id, investor_id, "50.00")

    pledges = await funding.list_pledges_for_investor(investor_id)
    investments = await funding.list_investments_for_investor(investor_id)

    assert [(p.application_id, p.pledged_amt) for p in pledges] == [(open_one.id, Decimal("50.00"))]
    assert [(i.loan_id, i.invested_amt) for i in investments] == [(loan_request.id, Decimal("100.00"))]


async def test_investor_views_unknown_user(funding):
    with pytest.raises(NotFoundError):
        await funding.list_pledges_for_investor(404)
    with pytest.raises(NotFoundError):
        await funding.list_investments_for_investor(404)
