"""Market interest rate suppliers used to price new loan requests."""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Mapping, Optional

import httpx

from lendpool.config import settings
from lendpool.core.exceptions import RateProviderError

logger = logging.getLogger(__name__)


class RateProvider(ABC):
    """
    Abstract supplier of annualized market rates keyed by term length.

    Rates are returned in percent (e.g. ``Decimal("3.75")``), before the
    marketplace margin is added.
    """

    @abstractmethod
    async def get_rates(self) -> dict[int, Decimal]:
        """
        Fetch the current term-to-rate mapping.

        Returns:
            Term in months mapped to the annual rate in percent
        """

    async def get_rate(self, term_months: int) -> Decimal:
        """
        Annual market rate in percent for one term.

        Raises:
            RateProviderError: If no rate is available for the term
        """
        rates = await self.get_rates()
        rate = rates.get(term_months)
        if rate is None:
            raise RateProviderError(f"No market rate available for a {term_months}-month term")
        return rate


class StaticRateProvider(RateProvider):
    """Rate provider backed by a fixed table, for local runs and tests."""

    def __init__(self, rates: Optional[Mapping[int, Any]] = None):
        source = settings.STATIC_RATES if rates is None else rates
        self.rates = {int(term): Decimal(str(rate)) for term, rate in source.items()}

    async def get_rates(self) -> dict[int, Decimal]:
        return dict(self.rates)


class BankOfCanadaRateProvider(RateProvider):
    """
    Rate provider reading benchmark yields from the Bank of Canada Valet API.

    Government bond yields supply the 2, 3 and 5 year terms and treasury bill
    yields the 1, 3, 6 and 12 month terms. The 4 year term has no benchmark
    and is interpolated from the 3 and 5 year yields.
    """

    BILL_SERIES = {
        1: "V80691342",
        3: "V80691344",
        6: "V80691345",
        12: "V80691346",
    }
    BOND_SERIES = {
        24: "BD.CDN.2YR.DQ.YLD",
        36: "BD.CDN.3YR.DQ.YLD",
        60: "BD.CDN.5YR.DQ.YLD",
    }

    def __init__(
        self,
        bonds_url: Optional[str] = None,
        bills_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider.

        Args:
            bonds_url: Valet URL for benchmark bond yields (defaults to settings)
            bills_url: Valet URL for treasury bill yields (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
            max_retries: Attempts per request before giving up (defaults to settings)
            retry_delay: Initial delay between retries in seconds (exponential backoff)
            transport: Optional httpx transport, used to stub the network
        """
        self.bonds_url = bonds_url or settings.BANK_OF_CANADA_BONDS_URL
        self.bills_url = bills_url or settings.BANK_OF_CANADA_BILLS_URL
        self.timeout = timeout if timeout is not None else settings.RATE_PROVIDER_TIMEOUT
        self.max_retries = max_retries or settings.RATE_PROVIDER_MAX_RETRIES
        self.retry_delay = retry_delay
        self.transport = transport

    async def get_rates(self) -> dict[int, Decimal]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            bonds = await self._latest_observation(client, self.bonds_url)
            bills = await self._latest_observation(client, self.bills_url)

        rates = {}
        for term, series in self.BILL_SERIES.items():
            rates[term] = self._read_value(bills, series)
        for term, series in self.BOND_SERIES.items():
            rates[term] = self._read_value(bonds, series)
        rates[48] = ((rates[36] + rates[60]) / 2).quantize(Decimal("0.01"))
        return rates

    async def _latest_observation(self, client: httpx.AsyncClient, url: str) -> dict:
        """Fetch a Valet group and return its most recent observation."""
        for attempt in range(self.max_retries):
            try:
                response = await client.get(url)
                response.raise_for_status()
                observations = response.json()["observations"]
                if not observations:
                    raise RateProviderError(f"No observations returned by {url}")
                return observations[-1]
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Rate lookup failed (attempt {attempt + 1}/{self.max_retries}), "
                        f"retrying in {wait_time}s: {str(e)}"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"Rate lookup failed after {self.max_retries} attempts: {str(e)}")
                    raise RateProviderError("Market rate service is unavailable") from e
            except httpx.HTTPStatusError as e:
                logger.error(f"Rate lookup returned HTTP {e.response.status_code} for {url}")
                raise RateProviderError("Market rate service returned an error") from e
            except (KeyError, ValueError) as e:
                logger.error(f"Unexpected rate payload from {url}: {str(e)}")
                raise RateProviderError("Market rate service returned malformed data") from e
        raise RateProviderError("Market rate service is unavailable")

    @staticmethod
    def _read_value(observation: dict, series: str) -> Decimal:
        try:
            return Decimal(str(observation[series]["v"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise RateProviderError(f"Series {series} missing from rate observation") from e


@lru_cache
def get_rate_provider() -> RateProvider:
    """Configured rate provider, shared across requests."""
    if settings.RATE_PROVIDER == "static":
        return StaticRateProvider()
    return BankOfCanadaRateProvider()
