"""
Tests for bounded retries and the page fetcher's transient-error policy.
"""

import unittest
from unittest.mock import patch

from selenium.common.exceptions import TimeoutException, WebDriverException

from config import RetryConfig
from models import FetchedPage
from page_fetcher import PageFetcher, is_transient
from resilience.retry_handler import RetryHandler


class TestRetryHandler(unittest.TestCase):
    """Test the attempt loop."""

    def setUp(self):
        patcher = patch('resilience.retry_handler.time.sleep')
        self.sleep = patcher.start()
        self.addCleanup(patcher.stop)

    def test_success_first_attempt(self):
        handler = RetryHandler(RetryConfig(max_retries=3, base_delay=2.0))
        self.assertEqual(handler.execute_with_retry(lambda: "ok"), (True, "ok"))
        self.sleep.assert_not_called()

    def test_fixed_delay_between_attempts(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("boom")
            return "done"

        handler = RetryHandler(RetryConfig(max_retries=3, base_delay=2.0))
        self.assertEqual(handler.execute_with_retry(flaky), (True, "done"))
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [2.0, 2.0])

    def test_gives_up_after_max_retries(self):
        calls = []

        def failing():
            calls.append(1)
            raise RuntimeError("still broken")

        handler = RetryHandler(RetryConfig(max_retries=4, base_delay=1.0))
        success, error = handler.execute_with_retry(failing)
        self.assertFalse(success)
        self.assertIn("still broken", error)
        self.assertEqual(len(calls), 4)
        self.assertEqual(self.sleep.call_count, 3)

    def test_none_result_counts_as_failure(self):
        handler = RetryHandler(RetryConfig(max_retries=2, base_delay=0.0))
        self.assertEqual(handler.execute_with_retry(lambda: None)[0], False)

    def test_non_retryable_error_propagates(self):
        handler = RetryHandler(RetryConfig(max_retries=3))
        with self.assertRaises(ValueError):
            handler.execute_with_retry(self._raise_value_error, retry_if=lambda e: False)
        self.sleep.assert_not_called()

    def test_backoff_capped(self):
        handler = RetryHandler(RetryConfig(max_retries=5, base_delay=10.0, max_delay=30.0, backoff_factor=2.0))
        self.assertEqual(list(handler.delays()), [10.0, 20.0, 30.0, 30.0])

    @staticmethod
    def _raise_value_error():
        raise ValueError("bad")


class FakeSession:
    """Navigates by popping scripted outcomes."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.urls = []
        self.closed = False

    def navigate(self, url):
        self.urls.append(url)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FetchedPage(url=url, final_url=outcome[0], html=outcome[1])

    def close(self):
        self.closed = True


class TestPageFetcher(unittest.TestCase):
    """Test retry policy of page fetching."""

    def setUp(self):
        patcher = patch('resilience.retry_handler.time.sleep')
        self.sleep = patcher.start()
        self.addCleanup(patcher.stop)
        self.retry = RetryConfig(max_retries=3, base_delay=5.0)

    def test_transient_classification(self):
        self.assertTrue(is_transient(TimeoutException("page load")))
        self.assertTrue(is_transient(WebDriverException("net::ERR_CONNECTION_RESET")))
        self.assertTrue(is_transient(ConnectionRefusedError()))
        self.assertFalse(is_transient(WebDriverException("no such window")))

    def test_timeout_retried_then_succeeds(self):
        session = FakeSession([TimeoutException("slow"), ("https://a/final", "<html></html>")])
        fetcher = PageFetcher(session, self.retry)

        page = fetcher.fetch_page("https://a/")
        self.assertEqual(page.final_url, "https://a/final")
        self.assertEqual(len(session.urls), 2)
        self.sleep.assert_called_once_with(5.0)

    def test_all_retries_failed_returns_empty(self):
        session = FakeSession([TimeoutException("slow")] * 3)
        fetcher = PageFetcher(session, self.retry)

        self.assertEqual(fetcher.fetch("https://a/"), "")
        self.assertEqual(len(session.urls), 3)

    def test_non_transient_error_propagates(self):
        session = FakeSession([WebDriverException("invalid session id")])
        fetcher = PageFetcher(session, self.retry)

        with self.assertRaises(WebDriverException):
            fetcher.fetch("https://a/")
        self.assertEqual(len(session.urls), 1)

    def test_close_closes_session(self):
        session = FakeSession([])
        PageFetcher(session, self.retry).close()
        self.assertTrue(session.closed)


if __name__ == '__main__':
    unittest.main()
