"""
Tests for browser session recovery and tab handling.
"""

import unittest

from selenium.common.exceptions import WebDriverException

from browser import BrowserSession


class DeadDriver:
    """Driver whose chromedriver process has gone away."""

    def __init__(self):
        self.quit_called = False

    @property
    def current_url(self):
        raise WebDriverException("chrome not reachable")

    def quit(self):
        self.quit_called = True
        raise WebDriverException("chrome not reachable")


class _SwitchTo:

    def __init__(self, driver):
        self.driver = driver

    def new_window(self, kind):
        self.driver.events.append(f"open {kind}")

    def window(self, handle):
        self.driver.events.append(f"switch {handle}")


class LiveDriver:
    """Driver that renders every URL as a tiny page."""

    def __init__(self):
        self.events = []
        self.switch_to = _SwitchTo(self)
        self.current_url = "about:blank"
        self.page_source = ""

    def get(self, url):
        self.current_url = url
        self.page_source = f"<html>{url}</html>"

    def close(self):
        self.events.append("close tab")

    def quit(self):
        self.events.append("quit")


class TestBrowserSession(unittest.TestCase):
    """Test driver restarts and tab lifecycle."""

    def setUp(self):
        self.session = BrowserSession()
        self.started = []
        self.session._init_driver = self._fake_init

    def _fake_init(self):
        self.started.append(True)
        self.session.driver = LiveDriver()
        self.session._main_handle = "main"

    def test_dead_driver_restarted(self):
        dead = DeadDriver()
        self.session.driver = dead

        page = self.session.navigate("https://a/")

        self.assertEqual(self.started, [True])
        self.assertTrue(dead.quit_called)
        self.assertEqual(page.final_url, "https://a/")
        self.assertEqual(page.html, "<html>https://a/</html>")

    def test_live_driver_reused(self):
        self._fake_init()
        self.started.clear()

        self.session.navigate("https://a/")
        self.session.navigate("https://b/")

        self.assertEqual(self.started, [])
        self.assertEqual(self.session.driver.events.count("close tab"), 2)

    def test_tab_closed_on_navigation_error(self):
        self._fake_init()
        driver = self.session.driver

        def broken_get(url):
            raise WebDriverException("net::ERR_NAME_NOT_RESOLVED")
        driver.get = broken_get

        with self.assertRaises(WebDriverException):
            self.session.navigate("https://a/")
        self.assertEqual(driver.events, ["open tab", "close tab", "switch main"])


if __name__ == '__main__':
    unittest.main()
