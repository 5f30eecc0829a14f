# tests/test_settings.py

"""Tests for the Settings configuration class."""

import unittest
from pathlib import Path

from src.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_request_timeout_is_positive_int(self) -> None:
        """REQUEST_TIMEOUT must be a positive integer."""
        self.assertIsInstance(Settings.REQUEST_TIMEOUT, int)
        self.assertGreater(Settings.REQUEST_TIMEOUT, 0)

    def test_max_retries_is_positive(self) -> None:
        """MAX_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.MAX_RETRIES, 1)

    def test_backoff_bounds(self) -> None:
        """Backoff is non-negative and capped above its start."""
        self.assertGreaterEqual(Settings.RETRY_BACKOFF, 0)
        self.assertGreaterEqual(
            Settings.MAX_BACKOFF, Settings.RETRY_BACKOFF
        )

    def test_schedule_window_positive(self) -> None:
        """The eligibility window is a positive number of minutes."""
        self.assertGreater(Settings.SCHEDULE_WINDOW_MINUTES, 0)

    def test_concurrency_and_batch_positive(self) -> None:
        """Fan-out is bounded but non-zero."""
        self.assertGreaterEqual(Settings.MAX_CONCURRENCY, 1)
        self.assertGreaterEqual(Settings.BATCH_SIZE, 1)

    def test_user_agent_pool(self) -> None:
        """There are several distinct user agents to rotate."""
        self.assertGreater(len(Settings.USER_AGENTS), 1)
        self.assertEqual(
            len(Settings.USER_AGENTS), len(set(Settings.USER_AGENTS)),
        )

    def test_path_constants_are_paths(self) -> None:
        """Path-typed settings are Path instances."""
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.DB_PATH, Path)
        self.assertIsInstance(Settings.LOGS_DIR, Path)

    def test_impersonate_browser_is_string(self) -> None:
        """IMPERSONATE_BROWSER must be a non-empty string."""
        self.assertIsInstance(Settings.IMPERSONATE_BROWSER, str)
        self.assertTrue(len(Settings.IMPERSONATE_BROWSER) > 0)

    def test_default_headers_has_accept_language(self) -> None:
        """DEFAULT_HEADERS must include Accept-Language."""
        self.assertIn("Accept-Language", Settings.DEFAULT_HEADERS)


if __name__ == "__main__":
    unittest.main()
