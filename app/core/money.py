"""Money and period-key helpers shared by the commission services."""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

from app.core.exceptions import ValidationError


TWO_PLACES = Decimal("0.01")
PERIOD_ID_PATTERN = re.compile(r"^\d{6}$")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert DB/JSON numbers to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(amount: Number) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def convert_usd_to_eur(amount_usd: Number, usd_eur_rate: Number) -> Decimal:
    """amount_eur = round2(amount_usd x rate). Callers pass an already rounded USD amount."""
    return round2(to_decimal(amount_usd) * to_decimal(usd_eur_rate))


def validate_period_id(period_id: str) -> str:
    """Period keys are exactly six digits, YYYYMM, with a real month."""
    if not isinstance(period_id, str) or not PERIOD_ID_PATTERN.match(period_id):
        raise ValidationError(
            "Invalid period id. Expected format: YYYYMM",
            {"period_id": period_id},
        )
    if int(period_id[:4]) < 1:
        raise ValidationError(
            "Invalid year in period id",
            {"period_id": period_id},
        )
    month = int(period_id[4:6])
    if month < 1 or month > 12:
        raise ValidationError(
            "Invalid month in period id. Must be between 01 and 12",
            {"period_id": period_id},
        )
    return period_id


def parse_period_id(period_id: str) -> Tuple[int, int]:
    """Return (year, month) for a validated period key."""
    validate_period_id(period_id)
    return int(period_id[:4]), int(period_id[4:6])


def make_period_id(year: int, month: int) -> str:
    return f"{year:04d}{month:02d}"
