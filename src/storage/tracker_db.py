# src/storage/tracker_db.py

"""SQLite-backed store for tracked items, readings and alerts."""

import logging
import sqlite3
import threading
from collections.abc import Iterable
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.config.settings import Settings
from src.models.item_update import ItemUpdate
from src.models.notification_event import EventType, NotificationEvent
from src.models.price_reading import PriceReading
from src.models.tracked_item import (
    FetchMode,
    ItemStatus,
    TrackedItem,
    UserSchedulePreference,
)

logger = logging.getLogger("pricewatch.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    email      TEXT    NOT NULL UNIQUE,
    check_time TEXT    NOT NULL,
    timezone   TEXT    NOT NULL,
    verified   INTEGER NOT NULL DEFAULT 1,
    deleted_at TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id    INTEGER NOT NULL
               REFERENCES users(id) ON DELETE CASCADE,
    name       TEXT    NOT NULL,
    deleted_at TEXT
);

CREATE TABLE IF NOT EXISTS tracked_items (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          INTEGER NOT NULL
                     REFERENCES users(id) ON DELETE CASCADE,
    category_id      INTEGER
                     REFERENCES categories(id) ON DELETE CASCADE,
    url              TEXT    NOT NULL,
    selector         TEXT    NOT NULL,
    label            TEXT    NOT NULL DEFAULT '',
    fetch_mode       TEXT    NOT NULL DEFAULT 'auto',
    current_price    TEXT,
    currency         TEXT,
    last_checked     TEXT,
    status           TEXT    NOT NULL DEFAULT 'active'
                     CHECK (status IN ('active', 'error', 'paused')),
    error_message    TEXT,
    check_started_at TEXT,
    created_at       TEXT    NOT NULL,
    deleted_at       TEXT
);

CREATE TABLE IF NOT EXISTS price_readings (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    INTEGER NOT NULL
               REFERENCES tracked_items(id) ON DELETE CASCADE,
    price      TEXT    NOT NULL,
    currency   TEXT,
    scraped_at TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS notification_events (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id       INTEGER NOT NULL
                  REFERENCES tracked_items(id) ON DELETE CASCADE,
    user_id       INTEGER NOT NULL
                  REFERENCES users(id) ON DELETE CASCADE,
    event_type    TEXT    NOT NULL
                  CHECK (event_type IN ('price_change', 'scrape_error')),
    old_price     TEXT,
    new_price     TEXT,
    pct_change    TEXT,
    error_message TEXT,
    run_id        TEXT    NOT NULL DEFAULT '',
    created_at    TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_readings_item_date
    ON price_readings(item_id, scraped_at);

CREATE INDEX IF NOT EXISTS idx_events_item_run
    ON notification_events(item_id, run_id);
"""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _dec_to_text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _text_to_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _text_to_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_item(row: sqlite3.Row) -> TrackedItem:
    return TrackedItem(
        id=row["id"],
        user_id=row["user_id"],
        category_id=row["category_id"],
        url=row["url"],
        selector=row["selector"],
        label=row["label"],
        fetch_mode=FetchMode(row["fetch_mode"]),
        current_price=_text_to_dec(row["current_price"]),
        currency=row["currency"],
        last_checked=_text_to_dt(row["last_checked"]),
        status=ItemStatus(row["status"]),
        error_message=row["error_message"],
    )


class TrackerDB:
    """SQLite store shared by the scheduler's worker threads.

    Every public method holds an internal lock, so one connection can
    be used from ``asyncio.to_thread`` workers.  Deleting users,
    categories or items is soft (a ``deleted_at`` stamp that hides the
    rows); :meth:`purge_deleted` removes them for good and lets the
    foreign keys cascade to readings and alerts.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("TrackerDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Users & categories ───────────────────────────────

    def add_user(
        self,
        email: str,
        check_time: time,
        timezone: str,
        verified: bool = True,
    ) -> int:
        """Register a user and their daily check time. Returns the id."""
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone: {timezone!r}"
            raise ValueError(msg) from exc

        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO users (email, check_time, timezone, verified) "
                "VALUES (?, ?, ?, ?)",
                (
                    email,
                    check_time.strftime("%H:%M"),
                    timezone,
                    int(verified),
                ),
            )
        user_id = int(cur.lastrowid or 0)
        logger.info("Added user %d (%s, %s)", user_id, email, timezone)
        return user_id

    def add_category(self, user_id: int, name: str) -> int:
        """Create a category owned by *user_id*. Returns the id."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO categories (user_id, name) VALUES (?, ?)",
                (user_id, name),
            )
        return int(cur.lastrowid or 0)

    def get_schedule_preferences(
        self,
    ) -> list[UserSchedulePreference]:
        """Return schedule preferences for every live user."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, check_time, timezone, verified "
                "FROM users WHERE deleted_at IS NULL ORDER BY id",
            ).fetchall()
        return [
            UserSchedulePreference(
                user_id=r["id"],
                check_time=time.fromisoformat(r["check_time"]),
                timezone=r["timezone"],
                verified=bool(r["verified"]),
            )
            for r in rows
        ]

    # ── Tracked items ────────────────────────────────────

    def add_item(
        self,
        user_id: int,
        url: str,
        selector: str,
        category_id: int | None = None,
        label: str = "",
        fetch_mode: FetchMode = FetchMode.AUTO,
    ) -> TrackedItem:
        """Start tracking *selector* on *url* for *user_id*."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO tracked_items "
                "(user_id, category_id, url, selector, label, "
                " fetch_mode, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    user_id,
                    category_id,
                    url,
                    selector,
                    label,
                    fetch_mode.value,
                    _utcnow().isoformat(),
                ),
            )
        item_id = int(cur.lastrowid or 0)
        item = self.get_item(item_id)
        if item is None:
            msg = f"Tracked item {item_id} vanished after insert"
            raise LookupError(msg)
        logger.info("Tracking item %d: %s [%s]", item.id, url, selector)
        return item

    def get_item(self, item_id: int) -> TrackedItem | None:
        """Fetch one live item by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM tracked_items "
                "WHERE id = ? AND deleted_at IS NULL",
                (item_id,),
            ).fetchone()
        return _row_to_item(row) if row else None

    def list_items(
        self, user_id: int | None = None,
    ) -> list[TrackedItem]:
        """Return live items, optionally for one user."""
        sql = "SELECT * FROM tracked_items WHERE deleted_at IS NULL"
        params: tuple[int, ...] = ()
        if user_id is not None:
            sql += " AND user_id = ?"
            params = (user_id,)
        with self._lock:
            rows = self._conn.execute(
                sql + " ORDER BY id", params,
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def get_active_items(
        self, user_ids: Iterable[int],
    ) -> list[TrackedItem]:
        """Return ``active`` items owned by any of *user_ids*."""
        ids = sorted(set(user_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM tracked_items "
                "WHERE deleted_at IS NULL AND status = ? "
                f"AND user_id IN ({placeholders}) ORDER BY id",
                (ItemStatus.ACTIVE.value, *ids),
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def pause_item(self, item_id: int) -> bool:
        """Exclude an item from scheduled runs. Returns False if missing."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE tracked_items SET status = ? "
                "WHERE id = ? AND deleted_at IS NULL",
                (ItemStatus.PAUSED.value, item_id),
            )
        return cur.rowcount == 1

    def resume_item(self, item_id: int) -> bool:
        """Put a paused or errored item back into scheduled runs."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE tracked_items "
                "SET status = ?, error_message = NULL "
                "WHERE id = ? AND deleted_at IS NULL",
                (ItemStatus.ACTIVE.value, item_id),
            )
        return cur.rowcount == 1

    # ── Soft delete & purge ──────────────────────────────

    def delete_item(self, item_id: int) -> None:
        """Soft-delete one item."""
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE tracked_items SET deleted_at = ? "
                "WHERE id = ? AND deleted_at IS NULL",
                (_utcnow().isoformat(), item_id),
            )

    def delete_category(self, category_id: int) -> None:
        """Soft-delete a category and every item filed under it."""
        ts = _utcnow().isoformat()
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE categories SET deleted_at = ? "
                "WHERE id = ? AND deleted_at IS NULL",
                (ts, category_id),
            )
            self._conn.execute(
                "UPDATE tracked_items SET deleted_at = ? "
                "WHERE category_id = ? AND deleted_at IS NULL",
                (ts, category_id),
            )

    def delete_user(self, user_id: int) -> None:
        """Soft-delete a user with all their categories and items."""
        ts = _utcnow().isoformat()
        with self._lock, self._conn:
            for table, column in (
                ("users", "id"),
                ("categories", "user_id"),
                ("tracked_items", "user_id"),
            ):
                self._conn.execute(
                    f"UPDATE {table} SET deleted_at = ? "
                    f"WHERE {column} = ? AND deleted_at IS NULL",
                    (ts, user_id),
                )

    def purge_deleted(self) -> int:
        """Hard-delete soft-deleted rows. Returns items removed."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM tracked_items WHERE deleted_at IS NOT NULL",
            )
            removed = cur.rowcount
            self._conn.execute(
                "DELETE FROM categories WHERE deleted_at IS NOT NULL",
            )
            self._conn.execute(
                "DELETE FROM users WHERE deleted_at IS NOT NULL",
            )
        if removed:
            logger.info("Purged %d deleted items", removed)
        return removed

    # ── Per-item check claim ─────────────────────────────

    def try_claim(
        self,
        item_id: int,
        now: datetime | None = None,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Atomically mark *item_id* as being checked.

        Returns False when another check holds a claim younger than
        *ttl_seconds*; older claims are treated as abandoned.
        """
        moment = now or _utcnow()
        ttl = (
            Settings.CHECK_LOCK_TTL if ttl_seconds is None else ttl_seconds
        )
        stale_before = (moment - timedelta(seconds=ttl)).isoformat()
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE tracked_items SET check_started_at = ? "
                "WHERE id = ? AND deleted_at IS NULL "
                "AND (check_started_at IS NULL OR check_started_at < ?)",
                (moment.isoformat(), item_id, stale_before),
            )
        return cur.rowcount == 1

    def release_claim(self, item_id: int) -> None:
        """Clear the in-progress marker set by :meth:`try_claim`."""
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE tracked_items SET check_started_at = NULL "
                "WHERE id = ?",
                (item_id,),
            )

    # ── Recording a cycle ────────────────────────────────

    def apply_cycle(
        self,
        item_id: int,
        update: ItemUpdate,
        event: NotificationEvent | None = None,
    ) -> None:
        """Persist one scrape cycle in a single transaction.

        The item's current price and its newest reading are written
        together so they cannot diverge.  A pause that landed while the
        check was running is kept.
        """
        checked = update.last_checked.isoformat()
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE tracked_items SET "
                "status = CASE WHEN status = 'paused' THEN status "
                "ELSE ? END, "
                "last_checked = ?, current_price = ?, currency = ?, "
                "error_message = ? "
                "WHERE id = ?",
                (
                    update.status.value,
                    checked,
                    _dec_to_text(update.current_price),
                    update.currency,
                    update.error_message,
                    item_id,
                ),
            )
            if update.record_reading and update.current_price is not None:
                self._conn.execute(
                    "INSERT INTO price_readings "
                    "(item_id, price, currency, scraped_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        item_id,
                        _dec_to_text(update.current_price),
                        update.currency,
                        checked,
                    ),
                )
            if event is not None:
                self._insert_event(event)

    def _insert_event(self, event: NotificationEvent) -> None:
        self._conn.execute(
            "INSERT INTO notification_events "
            "(item_id, user_id, event_type, old_price, new_price, "
            " pct_change, error_message, run_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.item_id,
                event.user_id,
                event.event_type.value,
                _dec_to_text(event.old_price),
                _dec_to_text(event.new_price),
                _dec_to_text(event.pct_change),
                event.error_message,
                event.run_id,
                event.created_at.isoformat(),
            ),
        )

    # ── Querying history ─────────────────────────────────

    def get_price_history(self, item_id: int) -> list[PriceReading]:
        """Return all readings for an item, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT item_id, price, currency, scraped_at "
                "FROM price_readings WHERE item_id = ? "
                "ORDER BY scraped_at ASC, id ASC",
                (item_id,),
            ).fetchall()
        return [
            PriceReading(
                item_id=r["item_id"],
                price=Decimal(r["price"]),
                currency=r["currency"],
                scraped_at=datetime.fromisoformat(r["scraped_at"]),
            )
            for r in rows
        ]

    def get_trend_summary(
        self, item_id: int,
    ) -> dict[str, object] | None:
        """Min / max / latest price and reading count for an item."""
        history = self.get_price_history(item_id)
        if not history:
            return None
        prices = [r.price for r in history]
        return {
            "min": min(prices),
            "max": max(prices),
            "latest": prices[-1],
            "count": len(prices),
        }

    def get_notifications(
        self,
        item_id: int | None = None,
        run_id: str | None = None,
    ) -> list[NotificationEvent]:
        """Return logged alerts, optionally filtered by item and run."""
        sql = "SELECT * FROM notification_events WHERE 1 = 1"
        params: list[object] = []
        if item_id is not None:
            sql += " AND item_id = ?"
            params.append(item_id)
        if run_id is not None:
            sql += " AND run_id = ?"
            params.append(run_id)
        with self._lock:
            rows = self._conn.execute(
                sql + " ORDER BY id", params,
            ).fetchall()
        return [
            NotificationEvent(
                item_id=r["item_id"],
                user_id=r["user_id"],
                event_type=EventType(r["event_type"]),
                created_at=datetime.fromisoformat(r["created_at"]),
                run_id=r["run_id"],
                old_price=_text_to_dec(r["old_price"]),
                new_price=_text_to_dec(r["new_price"]),
                pct_change=_text_to_dec(r["pct_change"]),
                error_message=r["error_message"],
            )
            for r in rows
        ]

    def has_notification(
        self,
        item_id: int,
        run_id: str,
        event_type: EventType,
    ) -> bool:
        """True if *item_id* already alerted with *event_type* in *run_id*."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM notification_events "
                "WHERE item_id = ? AND run_id = ? AND event_type = ? "
                "LIMIT 1",
                (item_id, run_id, event_type.value),
            ).fetchone()
        return row is not None
