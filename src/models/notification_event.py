# src/models/notification_event.py

"""Append-only audit record of an outbound alert."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class EventType(str, Enum):
    """Kind of alert sent to a user."""

    PRICE_CHANGE = "price_change"
    SCRAPE_ERROR = "scrape_error"


@dataclass(frozen=True)
class NotificationEvent:
    """One alert emitted for a tracked item during a run."""

    item_id: int
    user_id: int
    event_type: EventType
    created_at: datetime
    run_id: str = ""
    old_price: Decimal | None = None
    new_price: Decimal | None = None
    pct_change: Decimal | None = None
    error_message: str | None = None
