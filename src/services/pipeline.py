# src/services/pipeline.py

"""One scrape cycle: fetch, parse, detect, persist, notify."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from src.models.notification_event import EventType, NotificationEvent
from src.models.outcomes import (
    Decision,
    ErrorOccurred,
    PriceChanged,
    ScrapeOutcome,
)
from src.models.tracked_item import ItemStatus, TrackedItem
from src.services.change_detector import (
    evaluate,
    next_state,
    should_notify,
)
from src.services.notifier import (
    LogNotifier,
    NotificationMessage,
    Notifier,
)
from src.services.scrape_orchestrator import ScrapeOrchestrator
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricewatch.pipeline")

SCHEDULED_STATUSES: frozenset[ItemStatus] = frozenset(
    {ItemStatus.ACTIVE}
)
MANUAL_STATUSES: frozenset[ItemStatus] = frozenset(
    {ItemStatus.ACTIVE, ItemStatus.ERROR}
)


@dataclass
class CycleResult:
    """What happened to one item during a run."""

    item_id: int
    outcome: ScrapeOutcome | None = None
    decision: Decision | None = None
    notified: bool = False
    skipped: bool = False
    skip_reason: str = ""


def build_event(
    item: TrackedItem,
    decision: Decision,
    run_id: str,
    now: datetime,
) -> NotificationEvent | None:
    """Audit record for a notification-worthy *decision*."""
    if isinstance(decision, PriceChanged):
        return NotificationEvent(
            item_id=item.id,
            user_id=item.user_id,
            event_type=EventType.PRICE_CHANGE,
            created_at=now,
            run_id=run_id,
            old_price=decision.old,
            new_price=decision.new,
            pct_change=decision.pct_change,
        )
    if isinstance(decision, ErrorOccurred):
        return NotificationEvent(
            item_id=item.id,
            user_id=item.user_id,
            event_type=EventType.SCRAPE_ERROR,
            created_at=now,
            run_id=run_id,
            error_message=decision.message,
        )
    return None


class ScrapePipeline:
    """Runs the full cycle for a single tracked item.

    The item is claimed in the store first, so a manual recheck and a
    scheduled check of the same item never interleave their writes.
    """

    def __init__(
        self,
        db: TrackerDB,
        orchestrator: ScrapeOrchestrator | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self.orchestrator = orchestrator or ScrapeOrchestrator()
        self.notifier: Notifier = notifier or LogNotifier()
        self._clock = clock or (lambda: datetime.now(UTC))

    def process_item(
        self,
        item: TrackedItem,
        run_id: str,
        allowed: frozenset[ItemStatus] = SCHEDULED_STATUSES,
    ) -> CycleResult:
        """Check *item* once and record the result."""
        if not self._db.try_claim(item.id, now=self._clock()):
            logger.info(
                "Item %d is already being checked, skipping", item.id,
            )
            return CycleResult(
                item_id=item.id,
                skipped=True,
                skip_reason="check already in progress",
            )

        try:
            # Re-read under the claim; the caller's copy may be stale
            current = self._db.get_item(item.id)
            if current is None:
                return CycleResult(
                    item_id=item.id, skipped=True, skip_reason="deleted",
                )
            if current.status not in allowed:
                return CycleResult(
                    item_id=item.id,
                    skipped=True,
                    skip_reason=f"status is {current.status.value}",
                )

            outcome = self.orchestrator.check(current)
            decision = evaluate(current, outcome)
            now = self._clock()
            update = next_state(current, outcome, now)

            event: NotificationEvent | None = None
            if should_notify(current, decision):
                event = build_event(current, decision, run_id, now)
                if event is not None and self._db.has_notification(
                    current.id, run_id, event.event_type,
                ):
                    logger.info(
                        "Item %d already alerted in run %s",
                        current.id,
                        run_id,
                    )
                    event = None

            self._db.apply_cycle(current.id, update, event)
        finally:
            self._db.release_claim(item.id)

        result = CycleResult(
            item_id=current.id, outcome=outcome, decision=decision,
        )
        if event is not None:
            updated = replace(
                current,
                status=update.status,
                current_price=update.current_price,
                currency=update.currency,
                error_message=update.error_message,
                last_checked=update.last_checked,
            )
            result.notified = self._deliver(updated, decision)
        return result

    def _deliver(self, item: TrackedItem, decision: Decision) -> bool:
        """Pass the alert on; delivery failures are the notifier's to own."""
        try:
            self.notifier.notify(
                NotificationMessage(
                    user_id=item.user_id, item=item, decision=decision,
                )
            )
        except Exception as exc:
            logger.error(
                "Notifier failed for item %d: %s",
                item.id,
                exc,
                exc_info=True,
            )
            return False
        return True
