"""
Crawl cache: pagination count and incremental high-water mark.
"""

import json
from pathlib import Path
from typing import Optional

from models import CacheRecord
from resilience.progress_tracker import backup_corrupted
from utils import format_timestamp, parse_timestamp, utc_now, write_json_atomic


class CrawlCache:
    """Loads and saves the {pages, lastChecked} cache record."""

    def __init__(self, path: str = "cache.json"):
        self.path = Path(path)
        self._record: Optional[CacheRecord] = None

    @property
    def record(self) -> CacheRecord:
        if self._record is None:
            return self.load()
        return self._record

    def load(self) -> CacheRecord:
        """
        Load the cache record, creating it with defaults if absent.

        Returns:
            CacheRecord (defaults on any parse failure). last_checked is
            None when the mark is missing or unparseable.
        """
        if not self.path.exists():
            print(f"⚠️  {self.path} does not exist, creating it...")
            self._record = CacheRecord()
            self.save(self._record)
            return self._record

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            pages = int(data.get('pages') or 0)
            last_checked = parse_timestamp(data.get('lastChecked'))
        except (json.JSONDecodeError, OSError, AttributeError, TypeError, ValueError) as e:
            print(f"⚠️  Failed to load {self.path}: {e}")
            backup_corrupted(self.path)
            self._record = CacheRecord()
            return self._record

        if last_checked is None:
            print(f"⚠️  No valid lastChecked in {self.path}, incremental runs will scrape everything")

        self._record = CacheRecord(pages=max(pages, 0), last_checked=last_checked)
        print(f"Cache loaded. {format_timestamp(last_checked) or 'never'} last checked, {self._record.pages} pages.")
        return self._record

    def save(self, record: Optional[CacheRecord] = None):
        """Atomically persist the cache record. Failures are logged, not raised."""
        if record is not None:
            self._record = record
        if self._record is None:
            return
        try:
            write_json_atomic(self.path, self._record.to_dict())
        except OSError as e:
            print(f"⚠️  Failed to save {self.path}: {e}")

    def touch(self):
        """Advance the high-water mark to now and save."""
        self.record.last_checked = utc_now()
        self.save()

    def set_pages(self, pages: int):
        self.record.pages = pages
        self.save()
