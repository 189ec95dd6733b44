"""Tests for opening, underwriting, editing and withdrawing loan requests."""

from datetime import timedelta
from decimal import Decimal

import pytest

from lendpool.core.enums import CancellationReason, LoanStage, Role
from lendpool.core.exceptions import (
    FundingStateError,
    InvalidArgumentError,
    NotFoundError,
    RateProviderError,
)
from lendpool.services.amortization import calculate_installment
from lendpool.services.rate_provider import StaticRateProvider
from lendpool.services.request_service import RequestService


@pytest.fixture
async def borrower_id(make_user):
    return await make_user(roles=(Role.BORROWER,))


@pytest.fixture
async def active_request(requests_service, borrower_id, purpose_id):
    return await requests_service.create_request(borrower_id, "5000", purpose_id, 12)


# ==================== Opening ====================


async def test_create_request_prices_off_market_rate(active_request, borrower_id):
    # 4.25% market rate for 12 months plus the 5% margin
    assert active_request.stage == LoanStage.ACTIVE
    assert active_request.borrower_id == borrower_id
    assert active_request.amt_requested == Decimal("5000.00")
    assert active_request.amt_funded == Decimal("0.00")
    assert active_request.interest_rate == Decimal("0.0925")
    assert active_request.installment_amt == calculate_installment(
        Decimal("5000"), Decimal("0.0925"), 12
    )
    assert active_request.app_open_date is not None


@pytest.mark.parametrize("amount, term", [("0", 12), ("-10", 12), ("1000", 7), ("1000", "abc")])
async def test_create_request_rejects_bad_input(requests_service, borrower_id, purpose_id, amount, term):
    with pytest.raises(InvalidArgumentError):
        await requests_service.create_request(borrower_id, amount, purpose_id, term)


async def test_create_request_unknown_purpose(requests_service, borrower_id):
    with pytest.raises(NotFoundError):
        await requests_service.create_request(borrower_id, "1000", 999, 12)


async def test_create_request_unknown_borrower(requests_service, purpose_id):
    with pytest.raises(NotFoundError):
        await requests_service.create_request(999, "1000", purpose_id, 12)


async def test_create_request_without_market_rate(db, borrower_id, purpose_id):
    service = RequestService(db, rate_provider=StaticRateProvider({12: "4.25"}))

    with pytest.raises(RateProviderError):
        await service.create_request(borrower_id, "1000", purpose_id, 24)
    assert await service.list_requests(LoanStage.ACTIVE) == []


# ==================== Underwriting ====================


async def test_approve_request(requests_service, active_request):
    approved = await requests_service.approve_request(
        active_request.id, interest_rate="0.08", amt_approved="4000", term_months=24
    )

    assert approved.id == active_request.id
    assert approved.stage == LoanStage.APPROVED
    assert approved.amt_approved == Decimal("4000.00")
    assert approved.interest_rate == Decimal("0.0800")
    assert approved.term_months == 24
    assert approved.installment_amt == calculate_installment(Decimal("4000"), Decimal("0.08"), 24)
    assert approved.amt_funded == Decimal("0.00")
    assert approved.available_for_funding is False
    assert approved.is_funded is False
    assert approved.funding_deadline - approved.app_approved_date == timedelta(days=30)


async def test_approved_request_leaves_active_stage(requests_service, active_request):
    app_id = active_request.id
    await requests_service.approve_request(
        app_id, interest_rate="0.08", amt_approved="5000", term_months=12
    )

    with pytest.raises(NotFoundError):
        await requests_service.get_request(app_id, LoanStage.ACTIVE)
    with pytest.raises(NotFoundError):
        await requests_service.approve_request(
            app_id, interest_rate="0.08", amt_approved="5000", term_months=12
        )
    assert (await requests_service.get_request(app_id, LoanStage.APPROVED)).id == app_id


@pytest.mark.parametrize(
    "rate, amount, term",
    [
        ("0", "1000", 12),
        ("1.5", "1000", 12),
        ("0.08", "0.50", 12),
        ("0.08", "1000", 18),
        (None, "1000", 12),
        ("0.08", "nope", 12),
    ],
)
async def test_approve_rejects_invalid_terms(requests_service, active_request, rate, amount, term):
    with pytest.raises(InvalidArgumentError):
        await requests_service.approve_request(
            active_request.id, interest_rate=rate, amt_approved=amount, term_months=term
        )

    unchanged = await requests_service.get_request(active_request.id, LoanStage.ACTIVE)
    assert unchanged.amt_approved is None


def test_validate_approval_data_normalizes_values():
    terms = RequestService.validate_approval_data(
        {"interest_rate": 0.075, "amt_approved": "1200.456", "term_months": "36"}
    )
    assert terms == {
        "interest_rate": Decimal("0.0750"),
        "amt_approved": Decimal("1200.46"),
        "term_months": 36,
    }


async def test_reject_request(requests_service, active_request):
    rejected = await requests_service.reject_request(active_request.id)

    assert rejected.stage == LoanStage.CANCELLED
    assert rejected.was_approved is False
    assert rejected.cancellation_reason == CancellationReason.UNMET_CRITERIA
    assert rejected.amt_approved == Decimal("0.00")
    assert rejected.app_cancelled_date is not None
    assert (await requests_service.get_request(active_request.id, LoanStage.CANCELLED)).id == active_request.id


async def test_reject_unknown_request(requests_service):
    with pytest.raises(NotFoundError):
        await requests_service.reject_request(12345)


async def test_cancel_approved_without_pledges(requests_service, approved_request):
    application = await approved_request()

    cancelled = await requests_service.cancel_request(application.id, CancellationReason.ADMIN_ACTION)

    assert cancelled.stage == LoanStage.CANCELLED
    assert cancelled.was_approved is True
    assert cancelled.cancellation_reason == CancellationReason.ADMIN_ACTION


async def test_cancel_active_request_is_not_found(requests_service, active_request):
    with pytest.raises(NotFoundError):
        await requests_service.cancel_request(active_request.id)


# ==================== Editing ====================


async def test_update_active_request_recomputes_installment(requests_service, active_request):
    updated = await requests_service.update_request(
        active_request.id, {"amt_requested": "8000", "term_months": 36}
    )

    assert updated.amt_requested == Decimal("8000.00")
    assert updated.term_months == 36
    assert updated.installment_amt == calculate_installment(
        Decimal("8000"), updated.interest_rate, 36
    )


async def test_update_rejects_fields_outside_the_stage(requests_service, active_request):
    with pytest.raises(InvalidArgumentError):
        await requests_service.update_request(active_request.id, {"amt_funded": "10"})
    with pytest.raises(InvalidArgumentError):
        await requests_service.update_request(active_request.id, {"amt_approved": "10"})
    with pytest.raises(InvalidArgumentError):
        await requests_service.update_request(active_request.id, {})


async def test_update_rejects_unknown_purpose(requests_service, active_request):
    with pytest.raises(NotFoundError):
        await requests_service.update_request(active_request.id, {"purpose_id": 999})


async def test_update_approved_request(requests_service, approved_request):
    application = await approved_request(amount="1000.00", rate="0.05", term=12)

    updated = await requests_service.update_request(
        application.id, {"amt_approved": "1500", "interest_rate": "0.06"}, stage=LoanStage.APPROVED
    )

    assert updated.amt_approved == Decimal("1500.00")
    assert updated.installment_amt == calculate_installment(Decimal("1500"), Decimal("0.06"), 12)


async def test_update_not_allowed_after_funding(requests_service):
    with pytest.raises(FundingStateError):
        await requests_service.update_request(1, {"interest_rate": "0.05"}, stage=LoanStage.FUNDED)


# ==================== Deleting & queries ====================


async def test_delete_active_request(requests_service, active_request):
    app_id = active_request.id
    await requests_service.delete_request(app_id)

    with pytest.raises(NotFoundError):
        await requests_service.get_request(app_id, LoanStage.ACTIVE)
    with pytest.raises(NotFoundError):
        await requests_service.delete_request(app_id)


async def test_delete_approved_request_without_pledges(requests_service, approved_request):
    application = await approved_request()

    await requests_service.delete_request(application.id, LoanStage.APPROVED)

    assert await requests_service.list_requests(LoanStage.APPROVED) == []


async def test_list_requests_for_borrower(requests_service, borrower_id, purpose_id):
    first = await requests_service.create_request(borrower_id, "1000", purpose_id, 6)
    second = await requests_service.create_request(borrower_id, "2000", purpose_id, 60)
    await requests_service.reject_request(first.id)

    everything = await requests_service.list_requests_for_borrower(borrower_id)
    active = await requests_service.list_requests_for_borrower(borrower_id, stage=LoanStage.ACTIVE)

    assert {a.id for a in everything} == {first.id, second.id}
    assert [a.id for a in active] == [second.id]


async def test_list_requests_for_unknown_borrower(requests_service):
    with pytest.raises(NotFoundError):
        await requests_service.list_requests_for_borrower(404)
