# src/services/change_detector.py

"""Decide whether a scrape outcome is a change worth reporting.

Prices are compared exactly as parsed, so a move from ``10.00`` to
``10.004`` is a change.  Only the percentage is rounded to cents.
"""

import logging
from datetime import datetime
from decimal import Decimal

from src.models.item_update import ItemUpdate
from src.models.outcomes import (
    Decision,
    ErrorOccurred,
    NoChange,
    PriceChanged,
    ScrapeOutcome,
    Success,
    describe_failure,
)
from src.models.price_reading import to_cents
from src.models.tracked_item import ItemStatus, TrackedItem

logger = logging.getLogger("pricewatch.detector")


def percent_change(old: Decimal, new: Decimal) -> Decimal | None:
    """``(new - old) / old * 100`` in cents; ``None`` when *old* is zero."""
    if old == 0:
        return None
    return to_cents((new - old) / old * 100)


def evaluate(item: TrackedItem, outcome: ScrapeOutcome) -> Decision:
    """Compare *outcome* with *item*'s stored state."""
    if not isinstance(outcome, Success):
        return ErrorOccurred(message=describe_failure(outcome))

    new = outcome.price
    if item.current_price is None:
        logger.info("Item %d: baseline price %s", item.id, new)
        return NoChange()

    old = item.current_price
    if new == old:
        return NoChange()

    pct = percent_change(old, new)
    logger.info(
        "Item %d: price %s -> %s (%s%%)",
        item.id,
        old,
        new,
        pct if pct is not None else "n/a",
    )
    return PriceChanged(old=old, new=new, pct_change=pct)


def next_state(
    item: TrackedItem,
    outcome: ScrapeOutcome,
    now: datetime,
) -> ItemUpdate:
    """Compute the item fields to persist for *outcome*.

    Success moves the item back to ``active`` and clears the error;
    failure moves it to ``error`` and keeps the last good price.  A
    paused item stays paused either way.
    """
    paused = item.status is ItemStatus.PAUSED

    if isinstance(outcome, Success):
        return ItemUpdate(
            status=ItemStatus.PAUSED if paused else ItemStatus.ACTIVE,
            last_checked=now,
            current_price=outcome.price,
            currency=outcome.currency or item.currency,
            error_message=None,
            record_reading=True,
        )

    return ItemUpdate(
        status=ItemStatus.PAUSED if paused else ItemStatus.ERROR,
        last_checked=now,
        current_price=item.current_price,
        currency=item.currency,
        error_message=describe_failure(outcome),
        record_reading=False,
    )


def should_notify(item: TrackedItem, decision: Decision) -> bool:
    """True when *decision* warrants an alert to the item's owner.

    Errors are reported once, on the transition into ``error``; an item
    that keeps failing on manual rechecks does not alert again.
    """
    if isinstance(decision, PriceChanged):
        return True
    if isinstance(decision, ErrorOccurred):
        return item.status is not ItemStatus.ERROR
    return False
