"""
Page fetching with retry on transient navigation failures.
"""

from typing import Optional

from selenium.common.exceptions import TimeoutException

from config import RetryConfig
from models import FetchedPage
from resilience.retry_handler import RetryHandler


TRANSIENT_MARKERS = (
    "Navigation timeout",
    "timed out receiving message from renderer",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
)


def is_transient(error: Exception) -> bool:
    """
    Check if a navigation error is worth retrying.

    Timeouts and refused/reset connections are transient; anything else
    is treated as a hard failure.
    """
    if isinstance(error, (TimeoutException, ConnectionRefusedError, ConnectionResetError)):
        return True
    message = str(error)
    return any(marker in message for marker in TRANSIENT_MARKERS)


class PageFetcher:
    """Fetches rendered pages through a browser session."""

    def __init__(self, session, retry_config: Optional[RetryConfig] = None):
        """
        Args:
            session: Object with navigate(url) -> FetchedPage (BrowserSession)
            retry_config: Attempt count and fixed delay for transient failures
        """
        self.session = session
        self.retry_handler = RetryHandler(retry_config)

    def fetch_page(self, url: str) -> Optional[FetchedPage]:
        """
        Fetch one page.

        Returns:
            FetchedPage, or None after all retries failed

        Raises:
            Exception: Non-transient navigation errors propagate immediately
        """
        success, result = self.retry_handler.execute_with_retry(
            self.session.navigate, url, retry_if=is_transient
        )
        if success:
            return result
        print(f"  ✗ All retries failed for {url}: {result}")
        return None

    def fetch(self, url: str) -> str:
        """Fetch page HTML, '' after all retries failed."""
        page = self.fetch_page(url)
        return page.html if page else ""

    def close(self):
        close = getattr(self.session, 'close', None)
        if close:
            close()


def create_fetcher(config) -> PageFetcher:
    """
    Create a browser-backed fetcher from configuration.

    Args:
        config: ScraperConfig with headless, page_timeout and retry settings

    Returns:
        PageFetcher with a lazily started browser session
    """
    from browser import BrowserSession

    session = BrowserSession(headless=config.headless, page_timeout=config.page_timeout)
    return PageFetcher(session, config.retry)
