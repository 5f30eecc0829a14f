# src/services/scrape_orchestrator.py

"""Fetch + parse for one tracked item, with retries and classification."""

import logging
import time
from collections.abc import Callable

from src.config.settings import Settings
from src.models.outcomes import (
    ExtractionFailed,
    FailureReason,
    FetchFailed,
    ScrapeOutcome,
    Success,
)
from src.models.tracked_item import FetchMode, TrackedItem
from src.parsers.price_parser import parse_price
from src.scrapers.errors import (
    BlockedError,
    FetchError,
    FetchTimeoutError,
    NetworkError,
    SelectorNotFoundError,
)
from src.scrapers.page_fetcher import PageFetcher, build_fetcher

logger = logging.getLogger("pricewatch.orchestrator")

FetcherFactory = Callable[[FetchMode], PageFetcher]


def classify_error(exc: FetchError) -> FailureReason:
    """Map a fetch exception onto its :class:`FailureReason`."""
    if isinstance(exc, FetchTimeoutError):
        return FailureReason.TIMEOUT
    if isinstance(exc, SelectorNotFoundError):
        return FailureReason.SELECTOR_NOT_FOUND
    return FailureReason.NETWORK


def initial_mode(item: TrackedItem) -> FetchMode:
    """Strategy to start with; ``auto`` items begin on the cheap path."""
    if item.fetch_mode is FetchMode.AUTO:
        return FetchMode.STATIC
    return item.fetch_mode


class ScrapeOrchestrator:
    """Runs fetch-then-parse for a tracked item and reports an outcome.

    Timeouts and network errors are retried with exponential backoff.
    A missing selector or unparseable text is a data problem and is
    reported straight away.  Nothing here touches storage.
    """

    def __init__(
        self,
        fetcher_factory: FetcherFactory = build_fetcher,
        max_retries: int | None = None,
        backoff: float | None = None,
        max_backoff: float | None = None,
    ) -> None:
        self.settings = Settings()
        self._fetcher_factory = fetcher_factory
        self.max_retries: int = (
            self.settings.MAX_RETRIES if max_retries is None else max_retries
        )
        if self.max_retries < 1:
            msg = f"max_retries must be at least 1, got {self.max_retries}"
            raise ValueError(msg)
        self.backoff: float = (
            self.settings.RETRY_BACKOFF if backoff is None else backoff
        )
        self.max_backoff: float = (
            self.settings.MAX_BACKOFF
            if max_backoff is None
            else max_backoff
        )

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return min(self.backoff * 2 ** (attempt - 1), self.max_backoff)

    def check(self, item: TrackedItem) -> ScrapeOutcome:
        """Fetch and parse *item*'s price, retrying transient failures."""
        mode = initial_mode(item)
        fetchers: dict[FetchMode, PageFetcher] = {}
        last_error: FetchError | None = None

        try:
            for attempt in range(1, self.max_retries + 1):
                if mode not in fetchers:
                    fetchers[mode] = self._fetcher_factory(mode)
                fetcher = fetchers[mode]

                try:
                    result = fetcher.fetch(item.url, item.selector)
                except SelectorNotFoundError as exc:
                    logger.warning(
                        "Item %d: selector not found (%s)", item.id, exc,
                    )
                    return FetchFailed(
                        reason=FailureReason.SELECTOR_NOT_FOUND,
                        message=str(exc),
                        attempts=attempt,
                    )
                except (FetchTimeoutError, NetworkError) as exc:
                    last_error = exc
                    logger.warning(
                        "Item %d: %s on attempt %d/%d via %s: %s",
                        item.id,
                        classify_error(exc).value,
                        attempt,
                        self.max_retries,
                        mode.value,
                        exc,
                    )
                    if (
                        isinstance(exc, BlockedError)
                        and item.fetch_mode is FetchMode.AUTO
                        and mode is FetchMode.STATIC
                    ):
                        mode = FetchMode.RENDER
                        logger.info(
                            "Item %d: escalating to render strategy",
                            item.id,
                        )
                    if attempt < self.max_retries:
                        time.sleep(self.backoff_delay(attempt))
                    continue

                parsed = parse_price(result.text)
                if parsed.price is None:
                    logger.info(
                        "Item %d: no price in %r", item.id, parsed.raw[:80],
                    )
                    return ExtractionFailed(raw=parsed.raw)
                logger.debug(
                    "Item %d: parsed %s %s on attempt %d",
                    item.id,
                    parsed.currency or "",
                    parsed.price,
                    attempt,
                )
                return Success(
                    price=parsed.price,
                    currency=parsed.currency,
                    raw=parsed.raw,
                )
        finally:
            for open_fetcher in fetchers.values():
                open_fetcher.close()

        if last_error is None:
            msg = f"Item {item.id}: no attempt was made"
            raise RuntimeError(msg)
        logger.error(
            "Item %d: giving up after %d attempts: %s",
            item.id,
            self.max_retries,
            last_error,
        )
        return FetchFailed(
            reason=classify_error(last_error),
            message=str(last_error),
            attempts=self.max_retries,
        )
