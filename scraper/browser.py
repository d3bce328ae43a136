"""
Browser session management.
Uses SeleniumBase UC mode to render pages behind Cloudflare protection.
"""

import os
import sys
from contextlib import contextmanager

from seleniumbase import Driver

from models import FetchedPage


class BrowserSession:
    """One browser for the whole job, one tab per navigation."""

    def __init__(self, headless: bool = True, page_timeout: float = 60.0):
        self.headless = headless
        self.page_timeout = page_timeout
        self.driver = None
        self._main_handle = None

    def _init_driver(self):
        """Initialize SeleniumBase Driver with UC mode"""
        if self.driver is not None:
            return

        print("Initializing browser...")
        if sys.platform.startswith('linux'):
            # Snap-packaged Chromium breaks chromedriver sandboxing
            os.environ['SNAP_NAME'] = ''
            os.environ['SNAP'] = ''
            os.environ['SNAP_INSTANCE_NAME'] = ''

        self.driver = Driver(uc=True, headless=self.headless)
        self.driver.set_page_load_timeout(self.page_timeout)
        self._main_handle = self.driver.current_window_handle

    def _ensure_driver(self):
        """Ensure driver is alive, recreate if needed"""
        if self.driver is None:
            self._init_driver()
            return
        try:
            self.driver.current_url
        except (ConnectionRefusedError, OSError, AttributeError) as e:
            print(f"  Browser connection lost ({type(e).__name__}), restarting...")
            self.close()
            self._init_driver()
        except Exception as e:
            # WebDriverException, urllib3 MaxRetryError from a dead chromedriver
            print(f"  Unexpected browser error ({type(e).__name__}: {e}), restarting...")
            self.close()
            self._init_driver()

    @contextmanager
    def page(self):
        """
        Open a fresh tab for one navigation.

        The tab is closed and focus returns to the main window on both
        success and error paths.
        """
        self._ensure_driver()
        self.driver.switch_to.new_window('tab')
        try:
            yield self.driver
        finally:
            try:
                self.driver.close()
            except Exception as e:
                print(f"  ‼️ Error closing tab: {e}")
            try:
                self.driver.switch_to.window(self._main_handle)
            except Exception as e:
                print(f"  ‼️ Error switching back to main window: {e}")

    def navigate(self, url: str) -> FetchedPage:
        """
        Load url in a fresh tab and capture the rendered page.

        Raises:
            WebDriverException: On navigation errors (timeouts included)
        """
        with self.page() as driver:
            driver.get(url)
            return FetchedPage(url=url, final_url=driver.current_url, html=driver.page_source)

    def close(self):
        """Close WebDriver"""
        if self.driver:
            try:
                self.driver.quit()
            except Exception as e:
                print(f"  Error closing browser: {e}")
            self.driver = None
            self._main_handle = None
