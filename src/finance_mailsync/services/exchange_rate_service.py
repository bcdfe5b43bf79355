"""ExchangeRateService for converting foreign purchases to the base currency."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

import httpx

from finance_mailsync.core.config import Settings
from finance_mailsync.exceptions import MailSyncError

logger = logging.getLogger(__name__)

# ISO code used by the rate feed for each normalized currency
RATE_CODES = {"RD$": "DOP", "USD": "USD", "EUR": "EUR"}

CENTS = Decimal("0.01")


class ExchangeRateUnavailable(MailSyncError):
    """Raised when no rate is known for a currency."""

    pass


@dataclass
class ConvertedAmount:
    """A base-currency amount with the conversion details kept for audit."""

    amount: Decimal
    rate: Decimal
    original_amount: Decimal
    original_currency: str


class ExchangeRateService:
    """Fetches USD-based rates, caching the last table for a configured TTL.

    When the feed is unreachable the configured USD to base rate is used and
    nothing is cached, so the next call retries the feed.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)
        self._clock = clock
        self._base_code = RATE_CODES.get(settings.base_currency, settings.base_currency)
        self._rates: dict[str, Decimal] | None = None
        self._fetched_at: datetime | None = None

    def _cache_fresh(self) -> bool:
        if self._rates is None or self._fetched_at is None:
            return False
        ttl = timedelta(seconds=self._settings.exchange_rate_cache_seconds)
        return self._clock() - self._fetched_at < ttl

    def _fetch_rates(self) -> dict[str, Decimal]:
        response = self._client.get(self._settings.exchange_rate_url)
        response.raise_for_status()
        data = response.json()
        if data.get("result", "success") != "success" or "rates" not in data:
            raise ValueError(f"Unexpected rate feed response: {data.get('result')}")
        return {code: Decimal(str(value)) for code, value in data["rates"].items()}

    def get_rates(self) -> dict[str, Decimal]:
        """Get the USD-based rate table."""
        if self._cache_fresh():
            return self._rates  # type: ignore[return-value]

        try:
            rates = self._fetch_rates()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Exchange rate fetch failed, using fallback rate: %s", e)
            return {
                "USD": Decimal("1"),
                self._base_code: Decimal(str(self._settings.exchange_rate_fallback)),
            }

        logger.info(
            "Fetched exchange rates (USD/%s %s)", self._base_code, rates.get(self._base_code)
        )
        self._rates = rates
        self._fetched_at = self._clock()
        return rates

    def get_rate(self, currency: str) -> Decimal:
        """Get how many base-currency units one unit of ``currency`` buys.

        Raises:
            ExchangeRateUnavailable: If the currency is not in the rate table.
        """
        code = RATE_CODES.get(currency, currency)
        if code == self._base_code:
            return Decimal("1")
        rates = self.get_rates()
        if code not in rates or self._base_code not in rates or rates[code] == 0:
            raise ExchangeRateUnavailable(f"No exchange rate for {currency}")
        return rates[self._base_code] / rates[code]

    def convert_to_base(self, amount: Decimal, currency: str) -> ConvertedAmount:
        """Convert an amount to the base currency, rounded to cents."""
        rate = self.get_rate(currency)
        return ConvertedAmount(
            amount=(amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP),
            rate=rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            original_amount=amount,
            original_currency=currency,
        )
