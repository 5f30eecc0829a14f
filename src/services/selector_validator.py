# src/services/selector_validator.py

"""Dry-run a URL + selector pair without persisting anything."""

import logging
from dataclasses import dataclass

from src.models.outcomes import FailureReason
from src.models.tracked_item import FetchMode
from src.parsers.price_parser import ParsedPrice, parse_price
from src.scrapers.errors import FetchError
from src.scrapers.page_fetcher import build_fetcher
from src.services.scrape_orchestrator import FetcherFactory, classify_error

logger = logging.getLogger("pricewatch.validator")


@dataclass(frozen=True)
class SelectorCheck:
    """Result of a single selector dry-run."""

    url: str
    selector: str
    parsed: ParsedPrice | None = None
    reason: FailureReason | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the selector yielded a parseable price."""
        return self.parsed is not None and self.parsed.ok


def validate_selector(
    url: str,
    selector: str,
    mode: FetchMode = FetchMode.AUTO,
    fetcher_factory: FetcherFactory = build_fetcher,
) -> SelectorCheck:
    """Fetch *url* once, apply *selector* and parse the text.

    Used by the element-picking UI to confirm a selection before the
    item is saved.  A single attempt, no retries, no storage.
    """
    concrete = FetchMode.STATIC if mode is FetchMode.AUTO else mode
    fetcher = fetcher_factory(concrete)
    try:
        result = fetcher.fetch(url, selector)
    except FetchError as exc:
        logger.info("Selector check failed for %s: %s", url, exc)
        return SelectorCheck(
            url=url,
            selector=selector,
            reason=classify_error(exc),
            error=str(exc),
        )
    finally:
        fetcher.close()

    parsed = parse_price(result.text)
    logger.info(
        "Selector check for %s: %r -> %s %s",
        url,
        parsed.raw[:60],
        parsed.currency or "",
        parsed.price,
    )
    return SelectorCheck(url=url, selector=selector, parsed=parsed)
