# src/scrapers/static_fetcher.py

"""Lightweight fetcher: one HTTP GET plus static HTML selection."""

import logging
import time

from bs4 import BeautifulSoup, Tag
from curl_cffi import requests as curl_requests
from curl_cffi.requests.exceptions import RequestException, Timeout
from soupsieve import SelectorSyntaxError

from src.config.settings import Settings
from src.scrapers.errors import (
    BlockedError,
    FetchTimeoutError,
    NetworkError,
    SelectorNotFoundError,
)
from src.scrapers.page_fetcher import (
    FetchResult,
    detect_challenge,
    pick_user_agent,
)

# Attributes that carry a machine-readable price on otherwise
# empty elements, e.g. <meta itemprop="price" content="19.99">
_VALUE_ATTRIBUTES: tuple[str, ...] = ("content", "value", "data-price")


def element_text(element: Tag) -> str:
    """Return visible text of *element*, falling back to value attributes."""
    text = element.get_text(" ", strip=True)
    if text:
        return text
    for attr in _VALUE_ATTRIBUTES:
        value = element.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class StaticPageFetcher:
    """Fetch a page with curl_cffi and select the price with BeautifulSoup.

    Suitable for server-rendered pages.  Script-driven storefronts need
    :class:`~src.scrapers.render_fetcher.RenderPageFetcher` instead.
    """

    def __init__(self, timeout: int | None = None) -> None:
        self.logger = logging.getLogger("pricewatch.fetcher.static")
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = (
            self.settings.REQUEST_TIMEOUT if timeout is None else timeout
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "StaticPageFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, url: str) -> curl_requests.Response:
        """Single GET with a rotated user agent; no retries."""
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "User-Agent": pick_user_agent(),
        }
        try:
            return self.session.get(
                url,
                headers=headers,
                timeout=self._request_timeout,
            )
        except Timeout as exc:
            raise FetchTimeoutError(
                f"No response within {self._request_timeout}s",
                url,
            ) from exc
        except RequestException as exc:
            raise NetworkError(str(exc), url) from exc

    def fetch(self, url: str, selector: str) -> FetchResult:
        """Return the text of the first element matching *selector*."""
        start = time.monotonic()
        resp = self._get(url)
        elapsed_ms = (time.monotonic() - start) * 1000

        if not 200 <= resp.status_code < 300:
            self.logger.warning(
                "HTTP %d for %s", resp.status_code, url,
            )
            raise NetworkError(
                f"HTTP {resp.status_code}",
                url,
                status_code=resp.status_code,
            )

        html = resp.text
        marker = detect_challenge(html)
        if marker is not None:
            self.logger.warning(
                "Bot challenge detected at %s (marker: '%s')",
                url,
                marker,
            )
            raise BlockedError(
                f"Bot challenge detected ({marker})",
                url,
                status_code=resp.status_code,
            )

        soup = BeautifulSoup(html, "lxml")
        try:
            element = soup.select_one(selector)
        except SelectorSyntaxError as exc:
            raise SelectorNotFoundError(
                f"Invalid selector {selector!r}: {exc}", url,
            ) from exc

        if element is None:
            raise SelectorNotFoundError(
                f"Selector {selector!r} matched nothing", url,
            )
        text = element_text(element)
        if not text:
            raise SelectorNotFoundError(
                f"Selector {selector!r} matched an empty element",
                url,
            )

        self.logger.debug(
            "Fetched %s in %.0fms: %r", url, elapsed_ms, text[:80],
        )
        return FetchResult(
            text=text,
            url=url,
            status_code=resp.status_code,
            elapsed_ms=elapsed_ms,
        )
