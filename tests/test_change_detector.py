# tests/test_change_detector.py

"""Tests for change detection and item state transitions."""

import unittest
from datetime import UTC, datetime
from decimal import Decimal

from src.models.outcomes import (
    ErrorOccurred,
    ExtractionFailed,
    FailureReason,
    FetchFailed,
    NoChange,
    PriceChanged,
    Success,
)
from src.models.tracked_item import ItemStatus, TrackedItem
from src.services.change_detector import (
    evaluate,
    next_state,
    percent_change,
    should_notify,
)

NOW = datetime(2026, 10, 18, 22, 0, tzinfo=UTC)


def _item(
    price: str | None = "100.00",
    status: ItemStatus = ItemStatus.ACTIVE,
    error: str | None = None,
) -> TrackedItem:
    return TrackedItem(
        id=1,
        user_id=1,
        url="https://shop.test/p/1",
        selector=".price",
        current_price=Decimal(price) if price is not None else None,
        currency="$",
        status=status,
        error_message=error,
    )


def _success(price: str) -> Success:
    return Success(price=Decimal(price), currency="$")


class TestEvaluate(unittest.TestCase):
    """Decision logic."""

    def test_price_drop(self) -> None:
        """100.00 -> 90.00 is a -10.00% change."""
        decision = evaluate(_item("100.00"), _success("90.00"))
        self.assertEqual(
            decision,
            PriceChanged(
                old=Decimal("100.00"),
                new=Decimal("90.00"),
                pct_change=Decimal("-10.00"),
            ),
        )

    def test_baseline_is_silent(self) -> None:
        """First successful read establishes the baseline."""
        self.assertEqual(evaluate(_item(None), _success("90.00")), NoChange())

    def test_same_price(self) -> None:
        """Equal prices are no change."""
        self.assertEqual(
            evaluate(_item("90.00"), _success("90")), NoChange(),
        )

    def test_one_cent_is_a_change(self) -> None:
        """Any difference counts, even a single cent."""
        decision = evaluate(_item("19.99"), _success("19.98"))
        self.assertIsInstance(decision, PriceChanged)

    def test_sub_cent_fluctuation_is_a_change(self) -> None:
        """10.00 -> 10.004 is reported, not rounded away."""
        decision = evaluate(_item("10.00"), _success("10.004"))
        self.assertEqual(
            decision,
            PriceChanged(
                old=Decimal("10.00"),
                new=Decimal("10.004"),
                pct_change=Decimal("0.04"),
            ),
        )

    def test_trailing_zeros_are_not_a_change(self) -> None:
        """Numerically equal readings compare equal."""
        self.assertEqual(
            evaluate(_item("10.00"), _success("10.000")), NoChange(),
        )

    def test_zero_old_price_has_no_percentage(self) -> None:
        """A change from 0 omits the percentage."""
        decision = evaluate(_item("0.00"), _success("5.00"))
        assert isinstance(decision, PriceChanged)
        self.assertIsNone(decision.pct_change)

    def test_failures_become_errors(self) -> None:
        """Both failure outcomes produce ErrorOccurred."""
        for outcome in (
            ExtractionFailed(raw="Sold out"),
            FetchFailed(FailureReason.TIMEOUT, "timed out", 3),
        ):
            with self.subTest(outcome=outcome):
                decision = evaluate(_item(), outcome)
                self.assertIsInstance(decision, ErrorOccurred)

    def test_error_message_mentions_reason(self) -> None:
        """The persisted message names the failure class."""
        decision = evaluate(
            _item(),
            FetchFailed(FailureReason.SELECTOR_NOT_FOUND, "no match", 1),
        )
        assert isinstance(decision, ErrorOccurred)
        self.assertIn("selector_not_found", decision.message)


class TestPercentChange(unittest.TestCase):
    """Percentage arithmetic in fixed point."""

    def test_rounding(self) -> None:
        """Results are quantised to cents, half-up."""
        self.assertEqual(
            percent_change(Decimal("3.00"), Decimal("4.00")),
            Decimal("33.33"),
        )
        self.assertEqual(
            percent_change(Decimal("8.00"), Decimal("9.00")),
            Decimal("12.50"),
        )

    def test_zero_old(self) -> None:
        """Division by zero is avoided."""
        self.assertIsNone(percent_change(Decimal("0"), Decimal("1")))


class TestNextState(unittest.TestCase):
    """Persisted transitions."""

    def test_success_clears_error(self) -> None:
        """A good read moves error -> active and clears the message."""
        item = _item("10.00", ItemStatus.ERROR, "timeout: boom")
        update = next_state(item, _success("12.345"), NOW)
        self.assertEqual(update.status, ItemStatus.ACTIVE)
        self.assertIsNone(update.error_message)
        self.assertEqual(update.current_price, Decimal("12.345"))
        self.assertTrue(update.record_reading)
        self.assertEqual(update.last_checked, NOW)

    def test_failure_sets_error_keeps_price(self) -> None:
        """A failed read keeps the last good price."""
        update = next_state(
            _item("10.00"), ExtractionFailed(raw="n/a"), NOW,
        )
        self.assertEqual(update.status, ItemStatus.ERROR)
        self.assertEqual(update.current_price, Decimal("10.00"))
        self.assertIsNotNone(update.error_message)
        self.assertFalse(update.record_reading)

    def test_paused_stays_paused(self) -> None:
        """Pause is only lifted explicitly."""
        item = _item("10.00", ItemStatus.PAUSED)
        self.assertEqual(
            next_state(item, _success("11"), NOW).status,
            ItemStatus.PAUSED,
        )
        self.assertEqual(
            next_state(item, ExtractionFailed(raw=""), NOW).status,
            ItemStatus.PAUSED,
        )

    def test_missing_currency_keeps_previous(self) -> None:
        """A read without a symbol keeps the stored currency."""
        update = next_state(
            _item("10.00"), Success(Decimal("11"), None), NOW,
        )
        self.assertEqual(update.currency, "$")


class TestShouldNotify(unittest.TestCase):
    """Alert policy."""

    def test_price_change_always_notifies(self) -> None:
        """Every price change is reported."""
        decision = PriceChanged(Decimal("1"), Decimal("2"), Decimal("100"))
        self.assertTrue(should_notify(_item(), decision))

    def test_first_error_notifies(self) -> None:
        """Entering error state is reported."""
        self.assertTrue(should_notify(_item(), ErrorOccurred("x")))

    def test_repeated_error_is_quiet(self) -> None:
        """An item already in error does not alert again."""
        item = _item(status=ItemStatus.ERROR, error="x")
        self.assertFalse(should_notify(item, ErrorOccurred("x")))

    def test_no_change_is_quiet(self) -> None:
        """Nothing to say."""
        self.assertFalse(should_notify(_item(), NoChange()))


if __name__ == "__main__":
    unittest.main()
