# src/scrapers/render_fetcher.py

"""Full-render fetcher for script-driven pages, backed by Playwright."""

import logging
import time

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import Page, sync_playwright

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


class RenderPageFetcher:
    """Load a page in headless Chromium and read the selected element.

    A browser is launched for every :meth:`fetch` call and closed before
    it returns, on success and on every failure path.  Nothing is held
    between calls, so :meth:`close` has nothing to release.  Browser
    failures outside navigation and selection (a missing Chromium, a
    crash mid-render) surface as :class:`NetworkError`.
    """

    def __init__(self, timeout: int | None = None) -> None:
        self.logger = logging.getLogger("pricewatch.fetcher.render")
        self.settings = Settings()
        self._request_timeout: int = (
            self.settings.REQUEST_TIMEOUT if timeout is None else timeout
        )

    def close(self) -> None:
        """No persistent resources; browsers are scoped per fetch."""

    def fetch(self, url: str, selector: str) -> FetchResult:
        """Render *url* and return the text of *selector*."""
        deadline = time.monotonic() + self._request_timeout
        start = time.monotonic()

        try:
            text, status_code = self._render(url, selector, deadline)
        except PlaywrightTimeoutError as exc:
            raise FetchTimeoutError(
                f"Browser did not respond within {self._request_timeout}s",
                url,
            ) from exc
        except PlaywrightError as exc:
            self.logger.warning("Browser failure for %s: %s", url, exc)
            raise NetworkError(f"Browser failure: {exc}", url) from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        self.logger.debug(
            "Rendered %s in %.0fms: %r", url, elapsed_ms, text[:80],
        )
        return FetchResult(
            text=text,
            url=url,
            status_code=status_code,
            elapsed_ms=elapsed_ms,
        )

    def _render(
        self, url: str, selector: str, deadline: float,
    ) -> tuple[str, int]:
        """Launch a browser, load *url* and read *selector*."""
        with sync_playwright() as pw:
            browser = pw.chromium.launch(
                headless=self.settings.RENDER_HEADLESS,
            )
            try:
                context = browser.new_context(
                    user_agent=pick_user_agent(),
                    extra_http_headers={
                        "Accept-Language": self.settings.DEFAULT_HEADERS[
                            "Accept-Language"
                        ],
                    },
                )
                page = context.new_page()
                status_code = self._navigate(page, url, deadline)

                marker = detect_challenge(page.content())
                if marker is not None:
                    self.logger.warning(
                        "Bot challenge rendered at %s (marker: '%s')",
                        url,
                        marker,
                    )
                    raise BlockedError(
                        f"Bot challenge detected ({marker})",
                        url,
                        status_code=status_code,
                    )

                text = self._select_text(page, url, selector, deadline)
            finally:
                browser.close()
        return text, status_code

    @staticmethod
    def _remaining_ms(deadline: float) -> float:
        """Milliseconds left before the hard deadline (at least 1)."""
        return max((deadline - time.monotonic()) * 1000, 1.0)

    def _navigate(self, page: Page, url: str, deadline: float) -> int:
        """Open *url*; map Playwright failures onto fetch errors."""
        try:
            resp = page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._remaining_ms(deadline),
            )
        except PlaywrightTimeoutError as exc:
            raise FetchTimeoutError(
                f"Page did not load within {self._request_timeout}s",
                url,
            ) from exc
        except PlaywrightError as exc:
            raise NetworkError(str(exc), url) from exc

        status_code: int = resp.status if resp is not None else 200
        if not 200 <= status_code < 300:
            raise NetworkError(
                f"HTTP {status_code}", url, status_code=status_code,
            )
        return status_code

    def _select_text(
        self,
        page: Page,
        url: str,
        selector: str,
        deadline: float,
    ) -> str:
        """Wait for *selector* and return its text."""
        try:
            handle = page.wait_for_selector(
                selector,
                state="attached",
                timeout=self._remaining_ms(deadline),
            )
        except PlaywrightTimeoutError as exc:
            raise SelectorNotFoundError(
                f"Selector {selector!r} did not appear", url,
            ) from exc
        except PlaywrightError as exc:
            raise SelectorNotFoundError(
                f"Invalid selector {selector!r}: {exc}", url,
            ) from exc

        if handle is None:
            raise SelectorNotFoundError(
                f"Selector {selector!r} matched nothing", url,
            )
        text = (handle.text_content() or "").strip()
        if not text:
            text = (handle.get_attribute("content") or "").strip()
        if not text:
            raise SelectorNotFoundError(
                f"Selector {selector!r} matched an empty element",
                url,
            )
        return " ".join(text.split())
