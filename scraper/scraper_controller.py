"""
Main orchestrator for crawling.
Walks listing pages, scrapes new items and checkpoints after every page so a
fresh process resumes where the last one stopped.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from config import ScraperConfig
from models import CrawlResult, ItemRecord, ListingEntry
from page_fetcher import create_fetcher
from resilience.crawl_cache import CrawlCache
from resilience.progress_tracker import ProgressTracker
from sites import SiteStrategy, get_site
from storage import GameStorage, JsonArrayFile
from utils import format_timestamp, name_from_url, utc_now


@dataclass
class _Tally:
    pages: int = 0
    discovered: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    failed_links: List[str] = field(default_factory=list)

    def fail(self, link: str):
        self.failed += 1
        self.failed_links.append(link)


class ScraperController:
    """Coordinates fetching, extraction, storage and checkpoints."""

    VALID_MODES = ['full', 'update', 'newest', 'fetch', 'probe', 'enumerate']

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        storage: Optional[GameStorage] = None,
        cache: Optional[CrawlCache] = None,
        progress: Optional[ProgressTracker] = None,
        fetcher=None,
        site: Optional[SiteStrategy] = None
    ):
        """
        Initialize controller with configuration.

        Args:
            config: ScraperConfig instance, uses defaults if None
            storage, cache, progress, fetcher, site: Components built from
                config when not given
        """
        self.config = config or ScraperConfig()
        self._stopped = False
        self._started_at: Optional[str] = None

        self.site = site or get_site(self.config.site, self.config.base_url)
        self.storage = storage or GameStorage(self.config.data_file)
        self.cache = cache or CrawlCache(self.config.cache_file)
        self.progress = progress or ProgressTracker(self.config.progress_file)
        self.fetcher = fetcher or create_fetcher(self.config)

    def run(self, mode: str = "full", resume: bool = True) -> CrawlResult:
        """
        Run a crawl in the specified mode.

        Args:
            mode: "full", "update", "newest", "fetch", "probe" or "enumerate"
            resume: Whether to resume from the saved progress marker

        Returns:
            CrawlResult with statistics and status
        """
        if mode not in self.VALID_MODES:
            raise ValueError(f"Invalid mode: {mode}. Must be one of {self.VALID_MODES}")

        self._stopped = False
        self._started_at = datetime.now().isoformat()

        print(f"Starting {self.site.name} crawl in '{mode}' mode...")

        try:
            if mode == "full":
                return self._crawl_pages("full", incremental=False, resume=resume)
            elif mode == "update":
                return self._crawl_pages("update", incremental=True, resume=resume)
            elif mode == "newest":
                return self._crawl_newest()
            elif mode == "fetch":
                return self._fetch_single()
            elif mode == "probe":
                pages = self.probe_page_count()
                return self._create_result(pages is not None, mode, _Tally(pages=1 if pages else 0))
            elif mode == "enumerate":
                return self._enumerate(resume)
        except Exception as e:
            print(f"Crawl failed: {e}")
            return self._create_result(False, mode, _Tally())
        finally:
            close = getattr(self.fetcher, 'close', None)
            if close:
                close()

    def stop(self):
        """Gracefully stop after the current item, preserving progress."""
        print("\nStopping crawl gracefully...")
        self._stopped = True

    def probe_page_count(self) -> Optional[int]:
        """
        Refresh the cached listing page count from the site's pagination.

        Returns:
            Page count, or None if it couldn't be determined
        """
        cache = self.cache.load()
        html = self.fetcher.fetch(self.site.page_count_url())
        pages = self.site.parse_page_count(html) if html else None

        if not pages:
            print("⚠️  Could not determine page count")
            return None

        if pages != cache.pages:
            self.cache.set_pages(pages)
            print(f"⚡️ Updated cache: {pages} pages")
        return pages

    def _crawl_pages(self, mode: str, incremental: bool, resume: bool) -> CrawlResult:
        """
        Walk numbered listing pages from the progress marker to the cached
        page count.
        """
        cache = self.cache.load()
        total_pages = cache.pages
        if total_pages <= 0:
            total_pages = self.probe_page_count() or 1
        print(f"Total pages to scrape: {total_pages}")

        start_index = self.progress.load() if resume else 0
        if start_index >= total_pages:
            print(f"Progress index {start_index} is past the last page, starting over")
            start_index = 0
        if start_index:
            print(f"Resuming from page {start_index + 1}")

        high_water = cache.last_checked if incremental else None
        if high_water is not None:
            print(f"Update mode: only scraping games newer than {format_timestamp(high_water)}")
        elif incremental:
            print("⚠️  No lastChecked timestamp in cache. Falling back to full scrape.")

        known = self._known_records()
        tally = _Tally()
        halted = False

        for page_number in range(start_index + 1, total_pages + 1):
            if self._stopped:
                break

            url = self.site.listing_url(page_number)
            print(f"\n[Page {page_number}/{total_pages}] Fetching {url}")
            tally.pages += 1

            html = self.fetcher.fetch(url)
            if not html:
                print(f"  🚩 Failed to fetch page {page_number}, continuing")
                continue

            entries = self.site.parse_listing(html)
            halted = self._process_listing(entries, known, high_water, tally)
            if self._stopped:
                break
            if halted:
                break

            self.progress.advance(page_number)
            self.cache.touch()
            print(f"  Page {page_number} done: {tally.completed} saved, "
                  f"{tally.skipped} skipped, {tally.failed} failed")

        if not self._stopped:
            if incremental:
                self.progress.delete()
            else:
                self.progress.reset()
            self.cache.touch()

        return self._create_result(not self._stopped, mode, tally)

    def _crawl_newest(self) -> CrawlResult:
        """Walk from the newest listing page following next-page links."""
        cache = self.cache.load()
        high_water = cache.last_checked
        if high_water is not None:
            print(f"Scraping games newer than {format_timestamp(high_water)}")
        else:
            print("⚠️  No lastChecked timestamp in cache. Walking every page.")

        known = self._known_records()
        tally = _Tally()
        url = self.site.newest_url()

        while url and not self._stopped:
            print(f"\n[Page {tally.pages + 1}] Fetching {url}")
            tally.pages += 1

            html = self.fetcher.fetch(url)
            if not html:
                print(f"  🚩 Failed to fetch {url}, stopping pagination")
                break

            entries = self.site.parse_newest(html)
            if self._process_listing(entries, known, high_water, tally, track_renames=True):
                break

            url = self.site.next_page_url(html)
            if url:
                print(f"  🔗 Next page: {url}")
            else:
                print("  🛑 No next page found, stopping pagination")

        if not self._stopped:
            self.cache.touch()
            print(f"⚡️ Updated lastChecked to {format_timestamp(self.cache.record.last_checked)}")

        return self._create_result(not self._stopped, "newest", tally)

    def _process_listing(
        self,
        entries: List[ListingEntry],
        known: Dict[str, ItemRecord],
        high_water: Optional[datetime],
        tally: _Tally,
        track_renames: bool = False
    ) -> bool:
        """
        Scrape the new entries of one listing page.

        Args:
            entries: Candidates from the listing page
            known: Stored records by link (updated with new saves)
            high_water: Incremental mark, None for a full crawl
            tally: Counters to update
            track_renames: Refresh known records whose listing name changed

        Returns:
            True if pagination should stop (everything on the page is old)
        """
        if not entries:
            print("  🚫 No items found on this page")
            return False

        tally.discovered += len(entries)
        print(f"  📦 Found {len(entries)} items")

        stamps = [e.timestamp for e in entries if e.timestamp is not None]
        if high_water is not None and stamps and max(stamps) <= high_water:
            print(f"  🛑 Newest item is not newer than {format_timestamp(high_water)}, stopping")
            return True

        any_new = False
        for i, entry in enumerate(entries, 1):
            if self._stopped:
                break

            if high_water is not None and entry.timestamp is not None and entry.timestamp <= high_water:
                tally.skipped += 1
                continue

            existing = known.get(entry.link)
            if existing is not None:
                if track_renames and self.site.tracks_renames and entry.name and entry.name != existing.name:
                    self._refresh_renamed(existing, entry)
                tally.skipped += 1
                continue

            print(f"  [{i}/{len(entries)}] {entry.name or entry.link}", end=" ")
            record = self._scrape_entry(entry)
            if record is None:
                tally.fail(entry.link)
                continue

            if high_water is not None and entry.timestamp is None:
                reference = record.updated or record.date
                if reference is None or reference <= high_water:
                    print(f"⏳ not newer than {format_timestamp(high_water)}")
                    tally.skipped += 1
                    continue
            any_new = True

            if not record.has_useful_data():
                print("✗ incomplete data")
                tally.fail(entry.link)
                continue

            if self.storage.append(record):
                known[record.link] = record
                tally.completed += 1
                print(f"  ✓ [{record.id}] {record.name}")
            else:
                tally.skipped += 1

        if high_water is not None and not stamps and not any_new and not self._stopped:
            print(f"  🛑 All items on this page are older than {format_timestamp(high_water)}, stopping")
            return True
        return False

    def _scrape_entry(self, entry: ListingEntry) -> Optional[ItemRecord]:
        """Fetch and extract one detail page. None on failure."""
        html = self.fetcher.fetch(entry.link)
        if not html:
            print("✗ fetch failed")
            return None

        try:
            record = self.site.extract_detail(html, entry)
        except Exception as e:
            print(f"✗ extraction error: {str(e)[:80]}")
            return None

        if record is None:
            print("✗ no content")
        return record

    def _refresh_renamed(self, existing: ItemRecord, entry: ListingEntry):
        """Update name and download links of a release renamed on the site."""
        print(f"  🔄 Name changed for {entry.link}: \"{existing.name}\" to \"{entry.name}\"")
        record = self._scrape_entry(entry)
        if record is None:
            return

        existing.name = record.name or entry.name
        existing.direct = record.direct or existing.direct
        existing.magnet = record.magnet or existing.magnet
        existing.last_checked = utc_now()
        if self.storage.update_record(existing):
            print(f"  ✓ Updated {existing.name}")

    def _fetch_single(self) -> CrawlResult:
        """Scrape one item given by URL or by name."""
        query = (self.config.query or "").strip()
        if not query:
            raise ValueError("query must be set for fetch mode")

        tally = _Tally(pages=1)
        print(f"🔎 Fetching details for: {query}")

        if re.match(r'^https?://', query):
            page = self.fetcher.fetch_page(query)
            if page is None:
                tally.fail(query)
                return self._create_result(False, "fetch", tally)
            name = self.site.extract_title(page.html)
            if not name:
                name = name_from_url(query)
                print(f"⚠️  Could not extract title from page, using fallback name: {name}")
            entry = ListingEntry(link=page.final_url or query, name=name)
            html = page.html
        else:
            entry = self._find_by_name(query)
            if entry is None:
                print(f"✗ {query} not found")
                return self._create_result(False, "fetch", tally)
            html = self.fetcher.fetch(entry.link)

        tally.discovered = 1
        record = self.site.extract_detail(html, entry) if html else None
        if record is None or not record.has_useful_data():
            print(f"⚠️  Skipping save for {entry.name}: incomplete data")
            tally.fail(entry.link)
            return self._create_result(False, "fetch", tally)

        existing = self._known_records().get(record.link)
        if existing is not None:
            record.id = existing.id
            saved = self.storage.update_record(record)
        else:
            saved = self.storage.append(record)

        if saved:
            tally.completed = 1
            print(f"✓ Saved game: {record.name} (ID: {record.id})")
        else:
            tally.fail(record.link)
        return self._create_result(saved, "fetch", tally)

    def _find_by_name(self, name: str) -> Optional[ListingEntry]:
        """Look a name up in the store, then through the site search."""
        existing = self.storage.find_by_name(name)
        if existing is not None:
            return ListingEntry(link=existing.link, name=existing.name)

        print(f"Game \"{name}\" not found in existing data. Searching on website...")
        url = self.site.search_url(name)
        if not url:
            return None
        html = self.fetcher.fetch(url)
        results = self.site.parse_search_results(html, name) if html else []
        return results[0] if results else None

    def _enumerate(self, resume: bool) -> CrawlResult:
        """Build the complete enumeration file from the site's A-Z list."""
        html = self.fetcher.fetch(self.site.catalog_page_count_url())
        total_pages = (self.site.parse_catalog_page_count(html) if html else None) or 1
        print(f"Enumerating {total_pages} catalog pages into {self.config.complete_file}")

        enumeration = JsonArrayFile(self.config.complete_file)
        marker = ProgressTracker(self.config.state_file)
        start_index = marker.load() if resume else 0
        if start_index >= total_pages:
            start_index = 0

        tally = _Tally()
        for page_number in range(start_index + 1, total_pages + 1):
            if self._stopped:
                break

            tally.pages += 1
            html = self.fetcher.fetch(self.site.catalog_url(page_number))
            if not html:
                print(f"  🚩 No content fetched for page {page_number}")
                continue

            entries = self.site.parse_catalog(html)
            tally.discovered += len(entries)
            added = enumeration.extend_unique([
                {'name': e.name, 'link': e.link, 'page': page_number} for e in entries
            ])
            tally.completed += added
            tally.skipped += len(entries) - added
            print(f"  🔥 Page {page_number}: {len(entries)} games, {added} new")
            marker.advance(page_number)

        if not self._stopped:
            marker.reset()
        return self._create_result(not self._stopped, "enumerate", tally)

    def _known_records(self) -> Dict[str, ItemRecord]:
        return {record.link: record for record in self.storage.load()}

    def _create_result(self, success: bool, mode: str, tally: _Tally) -> CrawlResult:
        """Create CrawlResult with calculated fields."""
        completed_at = datetime.now().isoformat()

        duration = 0.0
        if self._started_at:
            start = datetime.fromisoformat(self._started_at)
            end = datetime.fromisoformat(completed_at)
            duration = (end - start).total_seconds()

        items_per_hour = 0.0
        if duration > 0:
            items_per_hour = tally.completed / (duration / 3600)

        return CrawlResult(
            success=success,
            mode=mode,
            started_at=self._started_at or completed_at,
            completed_at=completed_at,
            pages_processed=tally.pages,
            total_discovered=tally.discovered,
            total_completed=tally.completed,
            total_skipped=tally.skipped,
            total_failed=tally.failed,
            failed_links=list(tally.failed_links),
            duration_seconds=duration,
            items_per_hour=items_per_hour
        )
