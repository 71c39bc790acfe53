"""
USD/EUR Exchange Rate Service

Business rule: the rate of a billing month is the market USD/EUR rate
as of the 6th of that month at 12:00 noon. It is fetched once and stored
on the period; calculations never use a live rate.

Lookup order:
1. Primary source (exchangerate-api.com)
2. Backup source (fxratesapi.com)
3. Neither: ExternalServiceError carrying a fallback rate the operator
   may accept explicitly. The fallback is never applied automatically.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

import httpx

from app.config import settings
from app.core.exceptions import TemporalError, ExternalServiceError
from app.core.money import to_decimal


logger = logging.getLogger(__name__)


@dataclass
class RateResult:
    rate: Decimal
    fixing_time: datetime
    source: str  # PRIMARY, BACKUP


class ExchangeRateService:
    """Fetches the fixed monthly USD->EUR rate from external sources."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.primary_url = settings.EXCHANGE_RATE_PRIMARY_URL
        self.backup_url = settings.EXCHANGE_RATE_BACKUP_URL
        self.timeout = settings.EXCHANGE_RATE_TIMEOUT_SECONDS
        self._transport = transport
        self._now = now or (lambda: datetime.now(timezone.utc))

    # ==================== Public API ====================

    @staticmethod
    def fixing_time(year: int, month: int) -> datetime:
        """The instant the monthly rate refers to (UTC)."""
        return datetime(
            year, month,
            settings.EXCHANGE_RATE_FIXING_DAY,
            settings.EXCHANGE_RATE_FIXING_HOUR,
            0, 0,
            tzinfo=timezone.utc,
        )

    async def get_monthly_rate(self, year: int, month: int) -> RateResult:
        """
        Get the USD/EUR rate for the 6th of the given month at noon.

        Raises:
            TemporalError: the fixing instant is still in the future
            ExternalServiceError: both sources failed (carries fallback_rate)
        """
        rate_time = self.fixing_time(year, month)
        now = self._now()

        logger.info(f"Fetching USD/EUR rate for {year}-{month:02d}-{settings.EXCHANGE_RATE_FIXING_DAY:02d} "
                    f"{settings.EXCHANGE_RATE_FIXING_HOUR:02d}:00")

        if rate_time > now:
            raise TemporalError(
                f"Rate fixing time {rate_time.isoformat()} has not been reached yet",
                {"fixing_time": rate_time.isoformat(), "now": now.isoformat()},
            )

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout,
            headers={"User-Agent": settings.EXCHANGE_RATE_USER_AGENT},
        ) as client:
            rate = await self._fetch_rate(client, self.primary_url, "Primary")
            source = "PRIMARY"

            if rate is None:
                logger.warning("Primary exchange rate source failed, trying backup")
                rate = await self._fetch_rate(client, self.backup_url, "Backup")
                source = "BACKUP"

        if rate is None:
            fallback = self.get_fallback_rate()
            logger.warning(f"No exchange rate source available, offering fallback {fallback}")
            raise ExternalServiceError(
                "Could not fetch the USD/EUR rate from any source",
                fallback_rate=float(fallback),
                details={"fallback_message": f"Fallback rate available: {self.format_rate(fallback)}"},
            )

        return RateResult(rate=rate, fixing_time=rate_time, source=source)

    @staticmethod
    def get_fallback_rate() -> Decimal:
        return to_decimal(settings.EXCHANGE_RATE_FALLBACK)

    @staticmethod
    def format_rate(rate) -> str:
        return f"1 USD = {to_decimal(rate):.6f} EUR"

    @staticmethod
    def is_valid_rate(rate) -> bool:
        """Plausibility band for a fetched rate."""
        value = to_decimal(rate)
        return to_decimal(settings.EXCHANGE_RATE_MIN) <= value <= to_decimal(settings.EXCHANGE_RATE_MAX)

    # ==================== Sources ====================

    async def _fetch_rate(self, client: httpx.AsyncClient, url: str, label: str) -> Optional[Decimal]:
        """
        Fetch EUR per USD from a source answering {"rates": {"EUR": ...}}.

        Returns None on any failure so the caller can try the next source.
        """
        try:
            response = await client.get(url)

            if response.status_code != 200:
                logger.error(f"{label} exchange rate API error: HTTP {response.status_code}")
                return None

            data = response.json()
            eur = (data.get("rates") or {}).get("EUR")
            if eur is None:
                logger.error(f"{label} exchange rate API returned no EUR rate")
                return None

            rate = to_decimal(eur)
            if not self.is_valid_rate(rate):
                logger.error(f"{label} exchange rate {rate} outside plausible range")
                return None

            logger.info(f"{label} API rate: {self.format_rate(rate)}")
            return rate

        except httpx.TimeoutException:
            logger.error(f"{label} exchange rate API timed out after {self.timeout}s")
            return None
        except (httpx.HTTPError, ValueError, AttributeError, ArithmeticError) as e:
            logger.error(f"{label} exchange rate API error: {e}")
            return None
