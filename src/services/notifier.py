# src/services/notifier.py

"""Hand-off point to whatever delivers alerts to users."""

import logging
from dataclasses import dataclass
from typing import Protocol

from src.models.outcomes import Decision, ErrorOccurred, PriceChanged
from src.models.tracked_item import TrackedItem

logger = logging.getLogger("pricewatch.notify")


@dataclass(frozen=True)
class NotificationMessage:
    """Structured event passed to a :class:`Notifier`."""

    user_id: int
    item: TrackedItem
    decision: Decision


class Notifier(Protocol):
    """Delivers alerts; templating and delivery retries live behind it."""

    def notify(self, message: NotificationMessage) -> None:
        """Deliver *message* (or queue it for delivery)."""
        ...


def summarize(message: NotificationMessage) -> str:
    """One-line description of a notification."""
    item = message.item
    name = item.label or item.url
    decision = message.decision
    if isinstance(decision, PriceChanged):
        symbol = item.currency or ""
        pct = (
            f" ({decision.pct_change:+}%)"
            if decision.pct_change is not None
            else ""
        )
        return (
            f"Price of {name} changed from {symbol}{decision.old} "
            f"to {symbol}{decision.new}{pct}"
        )
    if isinstance(decision, ErrorOccurred):
        return f"Could not check {name}: {decision.message}"
    return f"No change for {name}"


class LogNotifier:
    """Default notifier: writes each alert to the ``pricewatch.notify`` log."""

    def __init__(self) -> None:
        self.sent: int = 0

    def notify(self, message: NotificationMessage) -> None:
        """Log *message* for user *message.user_id*."""
        self.sent += 1
        logger.info(
            "[user %d] %s", message.user_id, summarize(message),
        )
