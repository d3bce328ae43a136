"""
Tests for the progress marker and crawl cache files.
"""

import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from resilience.crawl_cache import CrawlCache
from resilience.progress_tracker import ProgressTracker


class StateTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def read(self, name):
        with open(self.dir / name, encoding='utf-8') as f:
            return json.load(f)


class TestProgressTracker(StateTestCase):
    """Test the resumable progress marker."""

    def test_missing_file_created_with_default(self):
        tracker = ProgressTracker(str(self.dir / "progress.json"))
        self.assertEqual(tracker.load(), 0)
        self.assertEqual(self.read("progress.json"), {"lastCheckedIndex": 0})

    def test_advance_persists(self):
        tracker = ProgressTracker(str(self.dir / "progress.json"))
        tracker.advance(4)
        self.assertEqual(ProgressTracker(str(self.dir / "progress.json")).load(), 4)

    def test_reset_and_delete(self):
        path = self.dir / "progress.json"
        tracker = ProgressTracker(str(path))
        tracker.advance(3)
        tracker.reset()
        self.assertEqual(self.read("progress.json"), {"lastCheckedIndex": 0})

        tracker.delete()
        self.assertFalse(path.exists())

    def test_corrupted_file_backed_up(self):
        path = self.dir / "progress.json"
        path.write_text("{broken", encoding='utf-8')

        self.assertEqual(ProgressTracker(str(path)).load(), 0)
        self.assertEqual(len(list(self.dir.glob("progress.corrupted.*.json"))), 1)

    def test_negative_index_rejected(self):
        path = self.dir / "progress.json"
        path.write_text('{"lastCheckedIndex": -2}', encoding='utf-8')
        self.assertEqual(ProgressTracker(str(path)).load(), 0)


class TestCrawlCache(StateTestCase):
    """Test the pages / lastChecked cache record."""

    def test_missing_file_created(self):
        cache = CrawlCache(str(self.dir / "cache.json"))
        record = cache.load()
        self.assertEqual(record.pages, 0)
        self.assertIsNone(record.last_checked)
        self.assertEqual(self.read("cache.json")["pages"], 0)

    def test_load_existing(self):
        (self.dir / "cache.json").write_text(
            '{"pages": 12, "lastChecked": "2024-05-01T00:00:00.000Z"}', encoding='utf-8'
        )
        record = CrawlCache(str(self.dir / "cache.json")).load()
        self.assertEqual(record.pages, 12)
        self.assertEqual(record.last_checked, datetime(2024, 5, 1, tzinfo=timezone.utc))

    def test_invalid_last_checked_is_unset(self):
        (self.dir / "cache.json").write_text('{"pages": 3, "lastChecked": "soon"}', encoding='utf-8')
        record = CrawlCache(str(self.dir / "cache.json")).load()
        self.assertEqual(record.pages, 3)
        self.assertIsNone(record.last_checked)

    def test_corrupted_file_gives_defaults(self):
        (self.dir / "cache.json").write_text("[[[", encoding='utf-8')
        record = CrawlCache(str(self.dir / "cache.json")).load()
        self.assertEqual(record.pages, 0)
        self.assertIsNone(record.last_checked)

    def test_touch_and_set_pages(self):
        cache = CrawlCache(str(self.dir / "cache.json"))
        cache.load()
        cache.record.last_checked = datetime(2020, 1, 1, tzinfo=timezone.utc)
        cache.set_pages(7)
        cache.touch()

        data = self.read("cache.json")
        self.assertEqual(data["pages"], 7)
        self.assertFalse(data["lastChecked"].startswith("2020"))


if __name__ == '__main__':
    unittest.main()
