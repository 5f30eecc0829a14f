# tests/test_scheduler.py

"""Tests for due-item selection and batch runs."""

import tempfile
import threading
import unittest
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

from src.models.outcomes import NoChange, Success
from src.models.tracked_item import (
    ItemStatus,
    TrackedItem,
    UserSchedulePreference,
)
from src.services.pipeline import CycleResult
from src.services.scheduler import (
    RunReport,
    Scheduler,
    is_user_due,
    select_due,
)
from src.storage.tracker_db import TrackerDB

WINDOW = timedelta(minutes=30)
LONDON_2350 = UserSchedulePreference(
    user_id=1, check_time=time(23, 50), timezone="Europe/London",
)


def _item(
    item_id: int,
    user_id: int = 1,
    status: ItemStatus = ItemStatus.ACTIVE,
    last_checked: datetime | None = None,
) -> TrackedItem:
    return TrackedItem(
        id=item_id,
        user_id=user_id,
        url=f"https://shop.test/p/{item_id}",
        selector=".price",
        status=status,
        last_checked=last_checked,
    )


class TestIsUserDue(unittest.TestCase):
    """Timezone-aware eligibility window."""

    def test_inside_window_winter(self) -> None:
        """23:55 London (GMT) is inside 23:50 ± 30min."""
        now = datetime(2026, 1, 15, 23, 55, tzinfo=UTC)
        self.assertTrue(is_user_due(LONDON_2350, now, WINDOW))

    def test_outside_window_winter(self) -> None:
        """22:00 London is outside the window."""
        now = datetime(2026, 1, 15, 22, 0, tzinfo=UTC)
        self.assertFalse(is_user_due(LONDON_2350, now, WINDOW))

    def test_inside_window_summer_time(self) -> None:
        """During BST, 23:55 London is 22:55 UTC."""
        now = datetime(2026, 7, 15, 22, 55, tzinfo=UTC)
        self.assertTrue(is_user_due(LONDON_2350, now, WINDOW))

    def test_outside_window_summer_time(self) -> None:
        """22:00 BST is 21:00 UTC and is not due."""
        now = datetime(2026, 7, 15, 21, 0, tzinfo=UTC)
        self.assertFalse(is_user_due(LONDON_2350, now, WINDOW))

    def test_window_wraps_midnight(self) -> None:
        """00:10 the next day is within 20 minutes of 23:50."""
        now = datetime(2026, 1, 16, 0, 10, tzinfo=UTC)
        self.assertTrue(is_user_due(LONDON_2350, now, WINDOW))

    def test_boundary_inclusive(self) -> None:
        """Exactly 30 minutes away still counts."""
        now = datetime(2026, 1, 15, 23, 20, tzinfo=UTC)
        self.assertTrue(is_user_due(LONDON_2350, now, WINDOW))

    def test_other_timezone(self) -> None:
        """09:00 Tokyo is 00:00 UTC."""
        pref = UserSchedulePreference(
            user_id=2, check_time=time(9, 0), timezone="Asia/Tokyo",
        )
        self.assertTrue(
            is_user_due(pref, datetime(2026, 3, 1, 0, 5, tzinfo=UTC), WINDOW)
        )
        self.assertFalse(
            is_user_due(pref, datetime(2026, 3, 1, 9, 0, tzinfo=UTC), WINDOW)
        )


class TestSelectDue(unittest.TestCase):
    """Pure selection over preferences and items."""

    NOW = datetime(2026, 1, 15, 23, 55, tzinfo=UTC)

    def test_only_due_users_active_items(self) -> None:
        """Paused and errored items, and other users, are excluded."""
        prefs = [
            LONDON_2350,
            UserSchedulePreference(
                user_id=2, check_time=time(8, 0), timezone="Europe/London",
            ),
        ]
        items = [
            _item(1),
            _item(2, status=ItemStatus.PAUSED),
            _item(3, status=ItemStatus.ERROR),
            _item(4, user_id=2),
        ]
        due = select_due(self.NOW, prefs, items, WINDOW)
        self.assertEqual([i.id for i in due], [1])

    def test_unverified_user_excluded(self) -> None:
        """Unverified users are never scheduled."""
        pref = UserSchedulePreference(
            user_id=1,
            check_time=time(23, 50),
            timezone="Europe/London",
            verified=False,
        )
        self.assertEqual(select_due(self.NOW, [pref], [_item(1)], WINDOW), [])

    def test_recently_checked_item_skipped(self) -> None:
        """An item checked in the previous hourly run is not re-picked."""
        items = [
            _item(1, last_checked=self.NOW - timedelta(minutes=59)),
            _item(2, last_checked=self.NOW - timedelta(days=1)),
        ]
        due = select_due(self.NOW, [LONDON_2350], items, WINDOW)
        self.assertEqual([i.id for i in due], [2])

    def test_invalid_timezone_skipped(self) -> None:
        """A bad timezone on one user does not break selection."""
        prefs = [
            UserSchedulePreference(
                user_id=9, check_time=time(23, 50), timezone="Nowhere/City",
            ),
            LONDON_2350,
        ]
        items = [_item(1), _item(2, user_id=9)]
        due = select_due(self.NOW, prefs, items, WINDOW)
        self.assertEqual([i.id for i in due], [1])

    def test_zero_window_is_exact(self) -> None:
        """A zero window matches only the exact check instant."""
        exact = datetime(2026, 1, 15, 23, 50, tzinfo=UTC)
        zero = timedelta(0)
        self.assertEqual(
            [i.id for i in select_due(exact, [LONDON_2350], [_item(1)], zero)],
            [1],
        )
        self.assertEqual(
            select_due(self.NOW, [LONDON_2350], [_item(1)], zero), [],
        )

    def test_pure_and_repeatable(self) -> None:
        """Same inputs, same answer."""
        items = [_item(1), _item(2)]
        first = select_due(self.NOW, [LONDON_2350], items, WINDOW)
        second = select_due(self.NOW, [LONDON_2350], items, WINDOW)
        self.assertEqual(first, second)


class FlakyPipeline:
    """Pipeline stand-in that crashes on one item id."""

    def __init__(self, crash_on: int) -> None:
        self.crash_on = crash_on
        self.seen: list[int] = []
        self._lock = threading.Lock()

    def process_item(
        self,
        item: TrackedItem,
        run_id: str,
        allowed: frozenset[ItemStatus],
    ) -> CycleResult:
        with self._lock:
            self.seen.append(item.id)
        if item.id == self.crash_on:
            msg = "unexpected parser state"
            raise RuntimeError(msg)
        return CycleResult(
            item_id=item.id,
            outcome=Success(Decimal("1.00"), "$"),
            decision=NoChange(),
        )


class TestSchedulerBatch(unittest.IsolatedAsyncioTestCase):
    """Failure isolation and batching."""

    async def test_one_crash_does_not_stop_batch(self) -> None:
        """Item 3 raising still yields results for the other four."""
        pipeline = FlakyPipeline(crash_on=3)
        scheduler = Scheduler(
            MagicMock(), pipeline=pipeline, max_concurrency=2,  # type: ignore[arg-type]
        )
        items = [_item(i) for i in range(1, 6)]
        report = await scheduler.process_batch(items, "run-x")

        self.assertIsInstance(report, RunReport)
        self.assertEqual(
            sorted(r.item_id for r in report.results), [1, 2, 4, 5],
        )
        self.assertEqual(list(report.errors), [3])
        self.assertEqual(report.crashed, 1)
        self.assertEqual(sorted(pipeline.seen), [1, 2, 3, 4, 5])

    def test_non_positive_limits_rejected(self) -> None:
        """Zero concurrency or batch size is refused up front."""
        pipeline = FlakyPipeline(crash_on=-1)
        for kwargs in ({"max_concurrency": 0}, {"batch_size": 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError):
                    Scheduler(
                        MagicMock(),
                        pipeline=pipeline,  # type: ignore[arg-type]
                        **kwargs,
                    )

    async def test_small_batches_cover_all_items(self) -> None:
        """Batch size splits work without dropping items."""
        pipeline = FlakyPipeline(crash_on=-1)
        scheduler = Scheduler(
            MagicMock(), pipeline=pipeline, batch_size=2,  # type: ignore[arg-type]
        )
        report = await scheduler.process_batch(
            [_item(i) for i in range(1, 8)], "run-y",
        )
        self.assertEqual(len(report.results), 7)
        self.assertEqual(report.selected, 7)


class TestSchedulerWithStore(unittest.IsolatedAsyncioTestCase):
    """End-to-end selection against the SQLite store."""

    async def asyncSetUp(self) -> None:
        """Two users, one due at the test instant."""
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.db = TrackerDB(db_path=Path(self.tmp_dir.name) / "s.db")
        due_user = self.db.add_user(
            "due@example.com", time(23, 50), "Europe/London",
        )
        other = self.db.add_user(
            "later@example.com", time(8, 0), "Europe/London",
        )
        self.due_item = self.db.add_item(due_user, "https://a.test", ".p")
        self.paused = self.db.add_item(due_user, "https://b.test", ".p")
        self.db.pause_item(self.paused.id)
        self.db.add_item(other, "https://c.test", ".p")
        self.pipeline = FlakyPipeline(crash_on=-1)
        self.scheduler = Scheduler(
            self.db, pipeline=self.pipeline,  # type: ignore[arg-type]
        )

    async def asyncTearDown(self) -> None:
        """Close the database."""
        self.db.close()
        self.tmp_dir.cleanup()

    async def test_run_processes_only_due_items(self) -> None:
        """Only the due user's active item is checked."""
        now = datetime(2026, 1, 15, 23, 55, tzinfo=UTC)
        report = await self.scheduler.run(now)
        self.assertEqual(report.selected, 1)
        self.assertEqual(self.pipeline.seen, [self.due_item.id])

    async def test_run_outside_any_window(self) -> None:
        """Nobody is due at noon."""
        now = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)
        report = await self.scheduler.run(now)
        self.assertEqual(report.selected, 0)
        self.assertEqual(self.pipeline.seen, [])

    def test_check_now_unknown_item(self) -> None:
        """Manual checks of missing items raise LookupError."""
        with self.assertRaises(LookupError):
            self.scheduler.check_now(999)

    def test_check_now_paused_item(self) -> None:
        """Paused items must be resumed before a manual check."""
        with self.assertRaises(ValueError):
            self.scheduler.check_now(self.paused.id)

    def test_check_now_runs_pipeline(self) -> None:
        """A manual check goes through the pipeline once."""
        result = self.scheduler.check_now(self.due_item.id)
        self.assertEqual(result.item_id, self.due_item.id)
        self.assertEqual(self.pipeline.seen, [self.due_item.id])


if __name__ == "__main__":
    unittest.main()
