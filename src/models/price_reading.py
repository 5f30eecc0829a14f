# src/models/price_reading.py

"""Immutable historical price observation."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Quantise *value* to two fractional digits."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceReading:
    """A single price observation for a tracked item at a point in time."""

    item_id: int
    price: Decimal
    currency: str | None
    scraped_at: datetime
