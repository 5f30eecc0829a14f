# src/scrapers/page_fetcher.py

"""Fetch-strategy interface shared by the static and render fetchers."""

import logging
import random
from dataclasses import dataclass
from typing import Protocol

from src.config.settings import Settings
from src.models.tracked_item import FetchMode

logger = logging.getLogger("pricewatch.fetcher")


@dataclass(frozen=True)
class FetchResult:
    """Text of the selected element plus request metadata."""

    text: str
    url: str
    status_code: int = 200
    elapsed_ms: float = 0.0


class PageFetcher(Protocol):
    """Capability interface: fetch a page and return a selector's text.

    Implementations apply a hard timeout, raise the exceptions in
    :mod:`src.scrapers.errors` and never retry on their own.
    """

    def fetch(self, url: str, selector: str) -> FetchResult:
        """Return the text of the first element matching *selector*."""
        ...

    def close(self) -> None:
        """Release any resources held between fetches."""
        ...


def pick_user_agent() -> str:
    """Pick a user-agent string for the next request."""
    return random.choice(Settings.USER_AGENTS)


def detect_challenge(html: str) -> str | None:
    """Return the bot-challenge marker found in *html*, if any."""
    lower = html.lower()

    # Cloudflare challenge page markers (high-confidence)
    for marker in Settings.CF_CHALLENGE_MARKERS:
        if marker in lower:
            return marker

    # Generic CAPTCHA keyword scan; skipped for real pages that
    # merely mention a captcha somewhere in their markup
    has_body_content = "<body" in lower and len(html) > 5000
    if not has_body_content:
        for keyword in Settings.CAPTCHA_KEYWORDS:
            if keyword in lower:
                return keyword
    return None


def build_fetcher(mode: FetchMode) -> PageFetcher:
    """Construct the fetcher implementing a concrete *mode*.

    ``FetchMode.AUTO`` is a caller-side heuristic and is not accepted.
    """
    if mode is FetchMode.STATIC:
        from src.scrapers.static_fetcher import StaticPageFetcher

        return StaticPageFetcher()
    if mode is FetchMode.RENDER:
        from src.scrapers.render_fetcher import RenderPageFetcher

        return RenderPageFetcher()
    msg = f"No fetcher for mode {mode.value!r}"
    raise ValueError(msg)
