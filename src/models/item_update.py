# src/models/item_update.py

"""Field values written back to a tracked item after a check."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.models.tracked_item import ItemStatus


@dataclass(frozen=True)
class ItemUpdate:
    """Field values to persist on a tracked item after a cycle."""

    status: ItemStatus
    last_checked: datetime
    current_price: Decimal | None
    currency: str | None
    error_message: str | None
    record_reading: bool
