# src/models/outcomes.py

"""Result types flowing between orchestrator, detector and scheduler.

A scrape produces a :data:`ScrapeOutcome`; the change detector turns
that into a :data:`Decision`.  Both are closed unions of frozen
dataclasses so callers can branch with ``isinstance`` and never see a
half-filled result.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class FailureReason(str, Enum):
    """Classification of the error that ended a fetch."""

    TIMEOUT = "timeout"
    SELECTOR_NOT_FOUND = "selector_not_found"
    NETWORK = "network"


@dataclass(frozen=True)
class Success:
    """Fetch and parse both succeeded."""

    price: Decimal
    currency: str | None
    raw: str = ""


@dataclass(frozen=True)
class ExtractionFailed:
    """The page was fetched but its text held no usable price."""

    raw: str
    message: str = "Could not extract a price from the selected element"


@dataclass(frozen=True)
class FetchFailed:
    """Every fetch attempt failed; carries the last classification."""

    reason: FailureReason
    message: str
    attempts: int = 1


ScrapeOutcome = Success | ExtractionFailed | FetchFailed


@dataclass(frozen=True)
class NoChange:
    """Nothing worth telling the user about."""


@dataclass(frozen=True)
class PriceChanged:
    """The stored price differs from the new reading."""

    old: Decimal
    new: Decimal
    pct_change: Decimal | None


@dataclass(frozen=True)
class ErrorOccurred:
    """The scrape failed; ``message`` is persisted on the item."""

    message: str


Decision = NoChange | PriceChanged | ErrorOccurred


def describe_failure(outcome: ExtractionFailed | FetchFailed) -> str:
    """Human-readable message for a failed outcome."""
    if isinstance(outcome, ExtractionFailed):
        snippet = outcome.raw[:60]
        return f"{outcome.message} (text: {snippet!r})"
    return (
        f"{outcome.reason.value}: {outcome.message} "
        f"after {outcome.attempts} attempt(s)"
    )
