"""Tests for market rate lookup, with the network stubbed by httpx.MockTransport."""

from decimal import Decimal

import httpx
import pytest

from lendpool.config import settings
from lendpool.core.exceptions import RateProviderError
from lendpool.services.rate_provider import (
    BankOfCanadaRateProvider,
    StaticRateProvider,
    get_rate_provider,
)

BONDS_URL = "https://valet.test/bonds"
BILLS_URL = "https://valet.test/bills"

BONDS_PAYLOAD = {
    "observations": [
        {
            "d": "2026-10-15",
            "BD.CDN.2YR.DQ.YLD": {"v": "3.05"},
            "BD.CDN.3YR.DQ.YLD": {"v": "3.15"},
            "BD.CDN.5YR.DQ.YLD": {"v": "3.35"},
        },
        {
            "d": "2026-10-16",
            "BD.CDN.2YR.DQ.YLD": {"v": "3.10"},
            "BD.CDN.3YR.DQ.YLD": {"v": "3.20"},
            "BD.CDN.5YR.DQ.YLD": {"v": "3.40"},
        },
    ]
}
BILLS_PAYLOAD = {
    "observations": [
        {
            "d": "2026-10-16",
            "V80691342": {"v": "2.60"},
            "V80691344": {"v": "2.70"},
            "V80691345": {"v": "2.80"},
            "V80691346": {"v": "2.90"},
        }
    ]
}


def valet_handler(request: httpx.Request) -> httpx.Response:
    if str(request.url) == BONDS_URL:
        return httpx.Response(200, json=BONDS_PAYLOAD)
    if str(request.url) == BILLS_URL:
        return httpx.Response(200, json=BILLS_PAYLOAD)
    return httpx.Response(404)


def make_provider(handler, max_retries=3) -> BankOfCanadaRateProvider:
    return BankOfCanadaRateProvider(
        bonds_url=BONDS_URL,
        bills_url=BILLS_URL,
        timeout=1.0,
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


async def test_reads_latest_observation():
    rates = await make_provider(valet_handler).get_rates()

    assert rates == {
        1: Decimal("2.60"),
        3: Decimal("2.70"),
        6: Decimal("2.80"),
        12: Decimal("2.90"),
        24: Decimal("3.10"),
        36: Decimal("3.20"),
        48: Decimal("3.30"),
        60: Decimal("3.40"),
    }


async def test_get_rate_for_term():
    provider = make_provider(valet_handler)

    assert await provider.get_rate(24) == Decimal("3.10")
    with pytest.raises(RateProviderError):
        await provider.get_rate(18)


async def test_http_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(500)

    with pytest.raises(RateProviderError):
        await make_provider(handler).get_rates()
    assert len(calls) == 1


async def test_transport_errors_are_retried():
    failures = {"left": 2}

    def handler(request):
        if failures["left"]:
            failures["left"] -= 1
            raise httpx.ConnectError("connection refused", request=request)
        return valet_handler(request)

    rates = await make_provider(handler).get_rates()
    assert rates[60] == Decimal("3.40")


async def test_gives_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request.url)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RateProviderError):
        await make_provider(handler, max_retries=2).get_rates()
    assert len(calls) == 2


async def test_empty_observations():
    def handler(request):
        return httpx.Response(200, json={"observations": []})

    with pytest.raises(RateProviderError):
        await make_provider(handler).get_rates()


async def test_missing_series():
    def handler(request):
        if str(request.url) == BILLS_URL:
            return httpx.Response(200, json={"observations": [{"d": "2026-10-16"}]})
        return valet_handler(request)

    with pytest.raises(RateProviderError):
        await make_provider(handler).get_rates()


async def test_malformed_payload():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(RateProviderError):
        await make_provider(handler).get_rates()


async def test_static_provider():
    provider = StaticRateProvider({12: "4.25", 24: 3.9})

    assert await provider.get_rate(12) == Decimal("4.25")
    assert await provider.get_rate(24) == Decimal("3.9")
    with pytest.raises(RateProviderError):
        await provider.get_rate(36)


async def test_static_provider_defaults_to_settings():
    rates = await StaticRateProvider().get_rates()
    assert set(rates) == {6, 12, 24, 36, 48, 60}


@pytest.mark.parametrize(
    "name, expected",
    [("static", StaticRateProvider), ("bank_of_canada", BankOfCanadaRateProvider)],
)
def test_provider_selected_from_settings(monkeypatch, name, expected):
    monkeypatch.setattr(settings, "RATE_PROVIDER", name)
    get_rate_provider.cache_clear()
    try:
        assert isinstance(get_rate_provider(), expected)
    finally:
        get_rate_provider.cache_clear()
