# src/scrapers/errors.py

"""Exceptions raised by page fetchers."""


class FetchError(Exception):
    """Base class for every failure a page fetcher can report."""

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class FetchTimeoutError(FetchError, TimeoutError):
    """The page (or the selected element) did not arrive in time."""


class SelectorNotFoundError(FetchError):
    """The page loaded but the selector matched nothing usable."""


class NetworkError(FetchError):
    """Connection failure or non-success HTTP status."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, url)
        self.status_code = status_code


class BlockedError(NetworkError):
    """The site served a bot challenge instead of the page."""
