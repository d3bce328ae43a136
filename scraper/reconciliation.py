"""
Reconciliation jobs between the store, the site and the complete enumeration.
- diff by link (missing, orphaned, duplicate)
- redirect cleanup of orphaned records
- pending queue of missing games
- date drift sweep with resumable progress
- direct-link backfill
"""

from typing import Dict, List, Optional

from config import ScraperConfig
from models import DiffReport, DriftReport, ItemRecord, ListingEntry
from page_fetcher import create_fetcher
from resilience.crawl_cache import CrawlCache
from resilience.progress_tracker import ProgressTracker
from resilience.retry_handler import RetryHandler
from sites import SiteStrategy, get_site
from storage import GameStorage, PendingQueue, load_enumeration
from utils import format_timestamp, is_today, same_second, utc_now


def diff_by_link(records: List[ItemRecord], enumeration: List[dict]) -> DiffReport:
    """
    Compare the store against the complete enumeration by link.

    Args:
        records: Stored records
        enumeration: Complete list entries ({name, link, ...})

    Returns:
        DiffReport with enumeration entries missing from the store, store
        records absent from the enumeration and repeated store links
    """
    stored_links = set()
    duplicates = []
    for record in records:
        if record.link in stored_links:
            duplicates.append(record)
        stored_links.add(record.link)

    enumerated_links = {entry.get('link') for entry in enumeration}
    missing = [entry for entry in enumeration if entry.get('link') not in stored_links]

    orphaned = []
    seen_orphans = set()
    for record in records:
        if record.link not in enumerated_links and record.link not in seen_orphans:
            seen_orphans.add(record.link)
            orphaned.append(record)

    return DiffReport(missing=missing, orphaned=orphaned, duplicates=duplicates)


class Reconciler:
    """Runs the reconciliation jobs for one site."""

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        storage: Optional[GameStorage] = None,
        fetcher=None,
        site: Optional[SiteStrategy] = None,
        progress: Optional[ProgressTracker] = None,
        cache: Optional[CrawlCache] = None,
        queue: Optional[PendingQueue] = None
    ):
        self.config = config or ScraperConfig()
        self.site = site or get_site(self.config.site, self.config.base_url)
        self.storage = storage or GameStorage(self.config.data_file)
        self.fetcher = fetcher or create_fetcher(self.config)
        self.progress = progress or ProgressTracker(self.config.progress_file)
        self.cache = cache or CrawlCache(self.config.cache_file)
        self.queue = queue or PendingQueue(self.config.temp_file)
        self.retry_handler = RetryHandler(self.config.retry)
        self._stopped = False

    def stop(self):
        print("\nStopping gracefully...")
        self._stopped = True

    def close(self):
        close = getattr(self.fetcher, 'close', None)
        if close:
            close()

    def count_report(self) -> Dict[str, int]:
        """Print and return store counts against the enumeration and queue."""
        records = self.storage.load()
        enumeration = load_enumeration(self.config.complete_file)
        queue = self.queue.load(create_if_missing=False)

        report = {
            'games': len(records),
            'verified': sum(1 for r in records if r.verified),
            'with_direct_links': sum(1 for r in records if r.has_direct_links()),
            'not_checked_today': sum(1 for r in records if not is_today(r.last_checked)),
            'quarantined': len(self.storage.quarantined),
            'pending': len(queue),
        }

        if enumeration:
            diff = diff_by_link(records, enumeration)
            report.update({
                'enumerated': len(enumeration),
                'missing': len(diff.missing),
                'orphaned': len(diff.orphaned),
                'duplicates': len(diff.duplicates),
            })

        print("\n📊 Count report")
        for key, value in report.items():
            print(f"  {key.replace('_', ' ')}: {value}")
        return report

    def clean_redirects(self) -> List[ItemRecord]:
        """
        Drop orphaned records whose link now redirects to a stored link.

        Returns:
            The records kept in the store
        """
        records = self.storage.load()
        enumeration = load_enumeration(self.config.complete_file)
        if not enumeration:
            print("⚠️  No enumeration to compare against, skipping redirect cleanup")
            return records

        orphaned = diff_by_link(records, enumeration).orphaned
        if not orphaned:
            print("✓ No orphaned games found")
            return records

        print(f"Checking {len(orphaned)} orphaned games for redirects...")
        stored_links = {r.link for r in records}
        redirected = set()

        for i, record in enumerate(orphaned, 1):
            if self._stopped:
                break
            print(f"  [{i}/{len(orphaned)}] {record.name}", end=" ")
            try:
                page = self.fetcher.fetch_page(record.link)
            except Exception as e:
                print(f"✗ {str(e)[:80]}")
                continue
            if page is None:
                continue

            if page.final_url != record.link and page.final_url in stored_links:
                print(f"🔀 redirects to {page.final_url}")
                redirected.add(record.link)
            else:
                print("✓")

        if not redirected:
            print("No redirected games to remove")
            return records

        kept = [r for r in records if r.link not in redirected]
        print(f"🧹 Removing {len(redirected)} redirected games")
        self.storage.overwrite(kept)
        return kept

    def queue_missing(self) -> List[dict]:
        """
        Add enumeration entries missing from the store to the pending queue.

        Returns:
            The pending queue after the merge
        """
        enumeration = load_enumeration(self.config.complete_file)
        records = self.storage.load()
        missing = diff_by_link(records, enumeration).missing

        queue = self.queue.load(create_if_missing=False)
        queued_links = {entry['link'] for entry in queue}
        added = 0
        for entry in missing:
            if entry['link'] in queued_links:
                continue
            queued_links.add(entry['link'])
            queue.append({'name': entry.get('name', ''), 'link': entry['link']})
            added += 1

        if added:
            self.queue.save(queue)
        print(f"✓ {added} missing games queued, {len(queue)} pending")
        return queue

    def process_pending(self) -> int:
        """
        Scrape every queued entry, removing each one once handled.

        Returns:
            Number of records saved
        """
        queue = self.queue.load(create_if_missing=False)
        if not queue:
            print("No pending games")
            self.queue.delete()
            return 0

        total = len(queue)
        saved = 0
        while queue and not self._stopped:
            entry = queue[0]
            listing = ListingEntry(link=entry['link'], name=entry.get('name', ''))
            print(f"  [{total - len(queue) + 1}/{total}] {listing.name or listing.link}")

            html = self.fetcher.fetch(listing.link)
            record = self.site.extract_detail(html, listing) if html else None
            if record is not None and record.has_useful_data():
                if self.storage.append(record):
                    saved += 1
            else:
                print(f"  ⚠️  Skipping save for {listing.name or listing.link}: incomplete data")

            queue.pop(0)
            self.queue.save(queue)

        print(f"✓ {saved} pending games saved")
        return saved

    def compare(self) -> int:
        """
        Full reconciliation: redirect cleanup, queue missing games (unless a
        queue is already pending), then scrape the queue.

        Returns:
            Number of records saved from the queue
        """
        self.clean_redirects()

        if self.queue.load(create_if_missing=False):
            print(f"Found pending games in {self.queue.path}, resuming")
        else:
            self.queue_missing()

        saved = self.process_pending()
        if not self._stopped:
            self.cache.touch()
        return saved

    def check_dates(self, start_index: Optional[int] = None) -> DriftReport:
        """
        Sweep the store comparing stored dates with the site's dates.

        Mismatched records get the site's date, magnet and direct links. The
        progress marker is saved after every record and reset when the sweep
        completes.

        Args:
            start_index: Row to start from, the saved marker when None

        Returns:
            DriftReport with sweep statistics
        """
        records = self.storage.load()

        if not self.site.has_exact_dates:
            print(f"⚠️  {self.site.name} pages carry no exact dates, date check not supported")
            return DriftReport(total=len(records))

        start = self.progress.load() if start_index is None else max(start_index, 0)
        if start >= len(records):
            if records:
                print(f"Start index {start} is past the end of the store, starting over")
            start = 0

        report = DriftReport(total=len(records), started_from_index=start)
        print(f"Checking dates for {len(records) - start} games starting at index {start}")

        for i in range(start, len(records)):
            if self._stopped:
                break

            record = records[i]
            if is_today(record.last_checked):
                report.skipped += 1
                self.progress.advance(i + 1)
                continue

            print(f"  [{i + 1}/{len(records)}] {record.name}", end=" ")
            if record.date is None:
                report.invalid_json += 1

            success, outcome = self.retry_handler.execute_with_retry(self._check_record_date, records, i)
            if not success:
                print(f"✗ {outcome}")
                report.failed += 1
            elif outcome == 'fetch_failed':
                print("✗ fetch failed")
                report.failed += 1
            elif outcome == 'no_website':
                print("⚠️  no date on website")
                report.no_website += 1
            elif outcome == 'matched':
                print("✓")
                report.matched += 1
            else:
                print(f"🔧 date fixed to {format_timestamp(record.date)}")
                report.mismatched += 1
                report.fixed += 1
                if outcome == 'changed':
                    report.data_changes += 1

            self.progress.advance(i + 1)

        if not self._stopped:
            self.progress.reset()

        print(f"\n✓ Date check done. {report.matched} matched, {report.fixed} fixed "
              f"({report.data_changes} with new links), {report.skipped} checked today, "
              f"{report.no_website} without website date, {report.failed} failed")
        return report

    def _check_record_date(self, records: List[ItemRecord], index: int) -> str:
        """Check one record and persist the store. Returns the outcome name."""
        record = records[index]
        html = self.fetcher.fetch(record.link)
        if not html:
            return 'fetch_failed'
        website_date = self.site.extract_date(html)
        if website_date is None:
            return 'no_website'

        record.last_checked = utc_now()
        if same_second(record.date, website_date):
            self.storage.overwrite(records)
            return 'matched'

        magnet, direct = self.site.extract_download_links(html)
        changed = magnet != record.magnet or direct != record.direct
        record.date = website_date
        record.magnet = magnet
        record.direct = direct
        self.storage.overwrite(records)
        return 'changed' if changed else 'fixed'

    def backfill_direct_links(self) -> int:
        """
        Fetch direct mirrors for verified records that have none.

        Returns:
            Number of records updated
        """
        records = self.storage.load()
        targets = [r for r in records if r.verified and not r.has_direct_links()]
        print(f"{len(targets)} verified games without direct links")

        updated = 0
        for i, record in enumerate(targets, 1):
            if self._stopped:
                break
            print(f"  [{i}/{len(targets)}] {record.name}", end=" ")

            html = self.fetcher.fetch(record.link)
            if not html:
                print("✗ fetch failed")
                continue

            _, direct = self.site.extract_download_links(html)
            if not any(direct.values()):
                print("no direct links")
                continue

            record.direct = direct
            if self.storage.update_record(record):
                updated += 1
                print(f"✓ {', '.join(sorted(direct))}")

        print(f"✓ {updated} games updated with direct links")
        return updated
