# src/services/scheduler.py

"""Pick due items for a run and process them as isolated units."""

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.config.settings import Settings
from src.models.outcomes import ErrorOccurred, PriceChanged
from src.models.tracked_item import (
    ItemStatus,
    TrackedItem,
    UserSchedulePreference,
)
from src.services.pipeline import (
    MANUAL_STATUSES,
    SCHEDULED_STATUSES,
    CycleResult,
    ScrapePipeline,
)
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricewatch.scheduler")


def _as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def is_user_due(
    pref: UserSchedulePreference,
    now: datetime,
    window: timedelta,
) -> bool:
    """True if *now* is within *window* of the user's local check time.

    Yesterday's and tomorrow's occurrences are considered too, so a
    23:50 check time still matches at 00:10 the next day.
    """
    now_utc = _as_utc(now)
    tz = ZoneInfo(pref.timezone)
    local = now_utc.astimezone(tz)
    for offset in (-1, 0, 1):
        day = local.date() + timedelta(days=offset)
        target = datetime.combine(day, pref.check_time, tzinfo=tz)
        if abs(now_utc - target) <= window:
            return True
    return False


def due_user_ids(
    now: datetime,
    preferences: Iterable[UserSchedulePreference],
    window: timedelta,
) -> set[int]:
    """Ids of verified users whose check window contains *now*."""
    due: set[int] = set()
    for pref in preferences:
        if not pref.verified:
            continue
        try:
            if is_user_due(pref, now, window):
                due.add(pref.user_id)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "User %d has an invalid timezone %r, skipping",
                pref.user_id,
                pref.timezone,
            )
    return due


def select_due(
    now: datetime,
    preferences: Iterable[UserSchedulePreference],
    items: Iterable[TrackedItem],
    window: timedelta | None = None,
) -> list[TrackedItem]:
    """Return the ``active`` items of due users that need a check.

    An item checked less than two window-widths ago is skipped, so a
    user whose check time sits on a window boundary is not picked up
    by two consecutive hourly runs.
    """
    tolerance = (
        timedelta(minutes=Settings.SCHEDULE_WINDOW_MINUTES)
        if window is None
        else window
    )
    now_utc = _as_utc(now)
    users = due_user_ids(now_utc, preferences, tolerance)
    recent = now_utc - 2 * tolerance

    selected: list[TrackedItem] = []
    for item in items:
        if item.user_id not in users:
            continue
        if item.status is not ItemStatus.ACTIVE:
            continue
        if (
            item.last_checked is not None
            and _as_utc(item.last_checked) > recent
        ):
            logger.debug(
                "Item %d checked at %s, inside the window; skipping",
                item.id,
                item.last_checked.isoformat(),
            )
            continue
        selected.append(item)
    return selected


@dataclass
class RunReport:
    """Aggregate of one run across all selected items."""

    run_id: str
    started_at: datetime
    selected: int = 0
    results: list[CycleResult] = field(
        default_factory=lambda: list[CycleResult]()
    )
    errors: dict[int, str] = field(
        default_factory=lambda: dict[int, str]()
    )

    @property
    def changed(self) -> int:
        """Items whose price changed."""
        return sum(
            isinstance(r.decision, PriceChanged) for r in self.results
        )

    @property
    def failed(self) -> int:
        """Items whose scrape failed (persisted as ``error``)."""
        return sum(
            isinstance(r.decision, ErrorOccurred) for r in self.results
        )

    @property
    def skipped(self) -> int:
        """Items skipped because of a claim or status race."""
        return sum(r.skipped for r in self.results)

    @property
    def notified(self) -> int:
        """Alerts handed to the notifier."""
        return sum(r.notified for r in self.results)

    @property
    def crashed(self) -> int:
        """Items that raised an unexpected exception."""
        return len(self.errors)


def new_run_id(prefix: str = "run") -> str:
    """Unique id tagging every alert emitted by one run."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Scheduler:
    """Runs the pipeline over all due items with bounded concurrency."""

    def __init__(
        self,
        db: TrackerDB,
        pipeline: ScrapePipeline | None = None,
        max_concurrency: int | None = None,
        batch_size: int | None = None,
        window_minutes: int | None = None,
    ) -> None:
        self.settings = Settings()
        self._db = db
        self.pipeline = pipeline or ScrapePipeline(db)
        self.max_concurrency: int = (
            self.settings.MAX_CONCURRENCY
            if max_concurrency is None
            else max_concurrency
        )
        self.batch_size: int = (
            self.settings.BATCH_SIZE if batch_size is None else batch_size
        )
        if self.max_concurrency < 1 or self.batch_size < 1:
            msg = (
                "max_concurrency and batch_size must be positive, got "
                f"{self.max_concurrency} and {self.batch_size}"
            )
            raise ValueError(msg)
        self.window = timedelta(
            minutes=self.settings.SCHEDULE_WINDOW_MINUTES
            if window_minutes is None
            else window_minutes
        )

    # ── Selection ────────────────────────────────────────

    def due_items(self, now: datetime) -> list[TrackedItem]:
        """Recompute the due set from stored preferences."""
        preferences = self._db.get_schedule_preferences()
        users = due_user_ids(now, preferences, self.window)
        candidates = self._db.get_active_items(users)
        return select_due(now, preferences, candidates, self.window)

    # ── Runs ─────────────────────────────────────────────

    async def run(self, now: datetime | None = None) -> RunReport:
        """One scheduled tick: select due items and check each."""
        moment = _as_utc(now or datetime.now(UTC))
        items = await asyncio.to_thread(self.due_items, moment)
        logger.info(
            "Run at %s: %d item(s) due", moment.isoformat(), len(items),
        )
        return await self.process_batch(items, new_run_id())

    async def process_batch(
        self,
        items: list[TrackedItem],
        run_id: str,
    ) -> RunReport:
        """Check *items* in bounded batches; one failure never stops the rest."""
        report = RunReport(
            run_id=run_id,
            started_at=datetime.now(UTC),
            selected=len(items),
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(item: TrackedItem) -> CycleResult:
            async with semaphore:
                return await asyncio.to_thread(
                    self.pipeline.process_item,
                    item,
                    run_id,
                    SCHEDULED_STATUSES,
                )

        for start in range(0, len(items), self.batch_size):
            batch = items[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(run_one(item) for item in batch),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, CycleResult):
                    report.results.append(outcome)
                elif isinstance(outcome, Exception):
                    report.errors[item.id] = str(outcome)
                    logger.error(
                        "Unexpected failure on item %d in run %s: %s",
                        item.id,
                        run_id,
                        outcome,
                        exc_info=outcome,
                    )

        logger.info(
            "Run %s finished: %d checked, %d changed, %d failed, "
            "%d skipped, %d crashed",
            run_id,
            len(report.results),
            report.changed,
            report.failed,
            report.skipped,
            report.crashed,
        )
        return report

    def check_now(self, item_id: int) -> CycleResult:
        """Manual recheck of one item, outside the schedule.

        Errored items may be rechecked; paused or missing ones may not.
        """
        item = self._db.get_item(item_id)
        if item is None:
            msg = f"No tracked item with id {item_id}"
            raise LookupError(msg)
        if item.status is ItemStatus.PAUSED:
            msg = f"Item {item_id} is paused; resume it first"
            raise ValueError(msg)
        return self.pipeline.process_item(
            item, new_run_id("manual"), MANUAL_STATUSES,
        )
