# src/models/tracked_item.py

"""Tracked item and per-user schedule models."""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum


class ItemStatus(str, Enum):
    """Lifecycle state of a tracked item."""

    ACTIVE = "active"
    ERROR = "error"
    PAUSED = "paused"


class FetchMode(str, Enum):
    """Which fetch strategy to use for an item."""

    AUTO = "auto"
    STATIC = "static"
    RENDER = "render"


@dataclass
class TrackedItem:
    """A user's monitored target: a page URL plus a price selector."""

    id: int
    user_id: int
    url: str
    selector: str
    category_id: int | None = None
    label: str = ""
    fetch_mode: FetchMode = FetchMode.AUTO
    current_price: Decimal | None = None
    currency: str | None = None
    last_checked: datetime | None = None
    status: ItemStatus = ItemStatus.ACTIVE
    error_message: str | None = None


@dataclass
class UserSchedulePreference:
    """When (in local wall-clock time) a user wants their items checked."""

    user_id: int
    check_time: time
    timezone: str
    verified: bool = True
