"""Tests for the monthly USD/EUR rate lookup."""
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from app.core.exceptions import ExternalServiceError, TemporalError
from app.services.exchange_rate_service import ExchangeRateService
from tests.conftest import BACKUP_HOST, PRIMARY_HOST, rate_provider


async def test_primary_source_is_used_first():
    calls = []

    result = await rate_provider(primary=0.9134, backup=0.95, calls=calls).get_monthly_rate(2025, 6)

    assert result.rate == Decimal("0.9134")
    assert result.source == "PRIMARY"
    assert result.fixing_time == datetime(2025, 6, 6, 12, 0, tzinfo=timezone.utc)
    assert calls == [PRIMARY_HOST]


async def test_backup_source_after_primary_error():
    calls = []

    result = await rate_provider(primary=500, backup=0.9051, calls=calls).get_monthly_rate(2025, 6)

    assert result.rate == Decimal("0.9051")
    assert result.source == "BACKUP"
    assert calls == [PRIMARY_HOST, BACKUP_HOST]


async def test_backup_source_after_primary_timeout():
    provider = rate_provider(primary=httpx.ReadTimeout("slow"), backup=0.9051)

    result = await provider.get_monthly_rate(2025, 6)

    assert result.source == "BACKUP"


async def test_implausible_rate_is_discarded():
    result = await rate_provider(primary=9.5, backup=0.9051).get_monthly_rate(2025, 6)

    assert result.source == "BACKUP"
    assert result.rate == Decimal("0.9051")


async def test_both_sources_failing_offers_fallback():
    provider = rate_provider(primary=None, backup=httpx.ConnectError("down"))

    with pytest.raises(ExternalServiceError) as exc_info:
        await provider.get_monthly_rate(2025, 6)

    error = exc_info.value
    assert error.status_code == 502
    assert error.fallback_rate == 0.92
    assert error.details["fallback_rate"] == 0.92
    assert "1 USD = 0.920000 EUR" in error.details["fallback_message"]


async def test_future_fixing_time_is_rejected_without_calls():
    calls = []
    provider = rate_provider(primary=0.91, calls=calls, now=datetime(2025, 6, 6, 11, 59, tzinfo=timezone.utc))

    with pytest.raises(TemporalError):
        await provider.get_monthly_rate(2025, 6)

    assert calls == []


async def test_fixing_instant_itself_is_allowed():
    provider = rate_provider(primary=0.91, now=datetime(2025, 6, 6, 12, 0, tzinfo=timezone.utc))

    result = await provider.get_monthly_rate(2025, 6)

    assert result.rate == Decimal("0.91")


async def test_response_without_eur_rate_falls_through():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == PRIMARY_HOST:
            return httpx.Response(200, json={"base": "USD", "rates": {"GBP": 0.79}})
        return httpx.Response(200, json={"rates": {"EUR": 0.93}})

    provider = ExchangeRateService(
        transport=httpx.MockTransport(handler),
        now=lambda: datetime(2025, 7, 1, tzinfo=timezone.utc),
    )

    result = await provider.get_monthly_rate(2025, 6)

    assert result.source == "BACKUP"
    assert result.rate == Decimal("0.93")


def test_fixing_time():
    assert ExchangeRateService.fixing_time(2025, 1) == datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


def test_format_rate():
    assert ExchangeRateService.format_rate(Decimal("0.92")) == "1 USD = 0.920000 EUR"
    assert ExchangeRateService.format_rate(0.913456) == "1 USD = 0.913456 EUR"


@pytest.mark.parametrize("rate, valid", [
    ("0.92", True),
    ("0.7", True),
    ("1.3", True),
    ("0.69", False),
    ("1.31", False),
])
def test_is_valid_rate(rate, valid):
    assert ExchangeRateService.is_valid_rate(Decimal(rate)) is valid
