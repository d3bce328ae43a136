"""
Tests for the crawl loop using an in-memory site and fetcher.

Pages are "rendered" as their own URL so the fake site can look up listing
entries and detail fields by the HTML it receives.
"""

import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from config import RetryConfig, ScraperConfig
from models import FetchedPage, ItemRecord, ListingEntry
from scraper_controller import ScraperController
from sites.base import SiteStrategy
from utils import format_timestamp, utc_now

BASE = "https://fake.example/"
T = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def page_url(n):
    return f"{BASE}page/{n}/"


def game_url(slug):
    return f"{BASE}{slug}/"


class FakeSite(SiteStrategy):
    """Site whose pages are described by dictionaries keyed by URL."""

    name = "fake"
    has_exact_dates = True

    def __init__(self, listings=None, details=None, next_pages=None, page_count=None,
                 catalog=None, search=None):
        super().__init__(BASE)
        self.listings = listings or {}
        self.details = details or {}
        self.next_pages = next_pages or {}
        self.page_count = page_count
        self.catalog = catalog or {}
        self.search = search or {}

    def listing_url(self, page):
        return page_url(page)

    def parse_listing(self, html):
        return list(self.listings.get(html, []))

    def parse_page_count(self, html):
        return self.page_count

    def next_page_url(self, html):
        return self.next_pages.get(html)

    def catalog_url(self, page):
        return f"{BASE}catalog/{page}/"

    def parse_catalog(self, html):
        return list(self.catalog.get(html, []))

    def catalog_page_count_url(self):
        return f"{BASE}catalog/"

    def parse_catalog_page_count(self, html):
        return len(self.catalog) or None

    def extract_detail(self, html, entry):
        fields = self.details.get(html)
        if fields is None:
            return None
        data = {'name': entry.name, 'size': 5.0, 'magnet': f"magnet:?xt={html}"}
        data.update(fields)
        return ItemRecord(link=entry.link, last_checked=utc_now(), **data)

    def extract_date(self, html):
        return (self.details.get(html) or {}).get('date')

    def extract_download_links(self, html):
        fields = self.details.get(html) or {}
        return fields.get('magnet'), fields.get('direct', {})

    def extract_title(self, html):
        return (self.details.get(html) or {}).get('name')

    def search_url(self, term):
        return f"{BASE}search/{term}/"

    def parse_search_results(self, html, term):
        return list(self.search.get(term, []))


class FakeFetcher:
    """Returns every page with its (possibly redirected) URL as content."""

    def __init__(self, redirects=None, unreachable=()):
        self.redirects = redirects or {}
        self.unreachable = set(unreachable)
        self.fetched = []
        self.on_fetch = None
        self.closed = False

    def fetch_page(self, url):
        self.fetched.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        if url in self.unreachable:
            return None
        final_url = self.redirects.get(url, url)
        return FetchedPage(url=url, final_url=final_url, html=final_url)

    def fetch(self, url):
        page = self.fetch_page(url)
        return page.html if page else ""

    def close(self):
        self.closed = True


def write_json(path, data):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)


def read_json(path):
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def stored(record_id, slug, name=None, **fields):
    return ItemRecord(id=record_id, name=name or slug, link=game_url(slug), size=5.0,
                      magnet=f"magnet:?xt={slug}", date=T - timedelta(days=30),
                      last_checked=T - timedelta(days=1), **fields).to_dict()


class CrawlTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.config = ScraperConfig(
            site="fitgirl",
            base_url=BASE,
            data_file=str(self.dir / "games.json"),
            cache_file=str(self.dir / "cache.json"),
            progress_file=str(self.dir / "progress.json"),
            temp_file=str(self.dir / "temp.json"),
            complete_file=str(self.dir / "complete.json"),
            state_file=str(self.dir / "state.json"),
            retry=RetryConfig(max_retries=2, base_delay=0.0),
        )

    def tearDown(self):
        self._tmp.cleanup()

    def write_cache(self, pages, last_checked=T):
        write_json(self.dir / "cache.json", {"pages": pages, "lastChecked": format_timestamp(last_checked)})

    def write_store(self, entries):
        write_json(self.dir / "games.json", entries)

    def store(self):
        return read_json(self.dir / "games.json")

    def controller(self, site, fetcher=None):
        self.fetcher = fetcher or FakeFetcher()
        return ScraperController(self.config, fetcher=self.fetcher, site=site)


class TestFullCrawl(CrawlTestCase):
    """Test full-mode crawling of numbered listing pages."""

    def test_two_new_links_saved_with_sequential_ids(self):
        self.write_cache(pages=1)
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("a"), "Game A"), ListingEntry(game_url("b"), "Game B")]},
            details={game_url("a"): {}, game_url("b"): {}},
        )

        result = self.controller(site).run("full")

        self.assertTrue(result.success)
        self.assertEqual([(e["id"], e["name"]) for e in self.store()], [(1, "Game A"), (2, "Game B")])
        self.assertTrue(all(e["verified"] for e in self.store()))
        cache = read_json(self.dir / "cache.json")
        self.assertGreater(cache["lastChecked"], format_timestamp(T))
        self.assertEqual(read_json(self.dir / "progress.json"), {"lastCheckedIndex": 0})
        self.assertTrue(self.fetcher.closed)

    def test_known_link_not_duplicated(self):
        self.write_cache(pages=1)
        self.write_store([stored(1, "a")])
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("a"), "a"), ListingEntry(game_url("b"), "b")]},
            details={game_url("a"): {}, game_url("b"): {}},
        )

        result = self.controller(site).run("full")

        self.assertEqual([(e["id"], e["link"]) for e in self.store()],
                         [(1, game_url("a")), (2, game_url("b"))])
        self.assertNotIn(game_url("a"), self.fetcher.fetched)
        self.assertEqual(result.total_skipped, 1)

    def test_failed_extraction_not_saved_or_retried(self):
        self.write_cache(pages=1)
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("a"), "a"), ListingEntry(game_url("b"), "b")]},
            details={game_url("b"): {}},
        )

        result = self.controller(site).run("full")

        self.assertEqual([e["link"] for e in self.store()], [game_url("b")])
        self.assertEqual(self.fetcher.fetched.count(game_url("a")), 1)
        self.assertEqual(result.total_failed, 1)
        self.assertEqual(result.failed_links, [game_url("a")])

    def test_incomplete_record_not_saved(self):
        self.write_cache(pages=1)
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("a"), "a")]},
            details={game_url("a"): {'size': 0.0, 'magnet': None}},
        )

        self.controller(site).run("full")
        self.assertEqual(self.store(), [])

    def test_resume_from_marker(self):
        self.write_cache(pages=3)
        write_json(self.dir / "progress.json", {"lastCheckedIndex": 2})
        site = FakeSite(listings={page_url(3): [ListingEntry(game_url("c"), "c")]},
                        details={game_url("c"): {}})

        self.controller(site).run("full")

        listing_fetches = [u for u in self.fetcher.fetched if "/page/" in u]
        self.assertEqual(listing_fetches, [page_url(3)])
        self.assertEqual([e["link"] for e in self.store()], [game_url("c")])

    def test_no_resume_starts_from_first_page(self):
        self.write_cache(pages=2)
        write_json(self.dir / "progress.json", {"lastCheckedIndex": 1})

        self.controller(FakeSite()).run("full", resume=False)

        self.assertEqual(self.fetcher.fetched, [page_url(1), page_url(2)])

    def test_stop_keeps_marker_for_next_run(self):
        self.write_cache(pages=3)
        site = FakeSite(
            listings={
                page_url(1): [ListingEntry(game_url("a"), "a")],
                page_url(2): [ListingEntry(game_url("b"), "b")],
                page_url(3): [ListingEntry(game_url("c"), "c")],
            },
            details={game_url("a"): {}, game_url("b"): {}, game_url("c"): {}},
        )
        controller = self.controller(site)
        self.fetcher.on_fetch = lambda url: controller.stop() if url == page_url(2) else None

        result = controller.run("full")

        self.assertFalse(result.success)
        self.assertEqual(read_json(self.dir / "progress.json"), {"lastCheckedIndex": 1})
        self.assertEqual([e["link"] for e in self.store()], [game_url("a")])

        fetcher = FakeFetcher()
        ScraperController(self.config, fetcher=fetcher, site=site).run("full")
        self.assertEqual([u for u in fetcher.fetched if "/page/" in u], [page_url(2), page_url(3)])
        self.assertEqual([e["id"] for e in self.store()], [1, 2, 3])

    def test_unreachable_page_skipped(self):
        self.write_cache(pages=2)
        site = FakeSite(listings={page_url(2): [ListingEntry(game_url("b"), "b")]},
                        details={game_url("b"): {}})

        result = self.controller(site, FakeFetcher(unreachable=[page_url(1)])).run("full")

        self.assertTrue(result.success)
        self.assertEqual([e["link"] for e in self.store()], [game_url("b")])

    def test_page_count_probed_when_unknown(self):
        self.write_cache(pages=0)
        site = FakeSite(page_count=2)

        self.controller(site).run("full")

        self.assertEqual(read_json(self.dir / "cache.json")["pages"], 2)
        self.assertIn(page_url(2), self.fetcher.fetched)


class TestUpdateCrawl(CrawlTestCase):
    """Test incremental crawling against the lastChecked high-water mark."""

    def test_stops_at_first_page_without_newer_items(self):
        self.write_cache(pages=3)
        site = FakeSite(
            listings={
                page_url(1): [
                    ListingEntry(game_url("new"), "New", T + timedelta(hours=2)),
                    ListingEntry(game_url("old"), "Old", T - timedelta(hours=1)),
                ],
                page_url(2): [ListingEntry(game_url("older"), "Older", T - timedelta(hours=3))],
                page_url(3): [ListingEntry(game_url("oldest"), "Oldest", T - timedelta(days=1))],
            },
            details={game_url(s): {} for s in ("new", "old", "older", "oldest")},
        )

        result = self.controller(site).run("update")

        self.assertTrue(result.success)
        self.assertEqual([e["link"] for e in self.store()], [game_url("new")])
        self.assertEqual(self.fetcher.fetched, [page_url(1), game_url("new"), page_url(2)])
        self.assertFalse((self.dir / "progress.json").exists())

    def test_item_equal_to_high_water_is_not_new(self):
        self.write_cache(pages=1)
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("same"), "Same", T)]},
            details={game_url("same"): {}},
        )

        self.controller(site).run("update")
        self.assertEqual(self.store(), [])

    def test_detail_dates_used_without_listing_timestamps(self):
        self.write_cache(pages=3)
        site = FakeSite(
            listings={
                page_url(1): [ListingEntry(game_url("n"), "N"), ListingEntry(game_url("o"), "O")],
                page_url(2): [ListingEntry(game_url("o2"), "O2")],
            },
            details={
                game_url("n"): {'updated': T + timedelta(hours=1), 'date': T - timedelta(days=9)},
                game_url("o"): {'updated': T - timedelta(days=1)},
                game_url("o2"): {'date': T - timedelta(days=2)},
            },
        )

        self.controller(site).run("update")

        self.assertEqual([e["link"] for e in self.store()], [game_url("n")])
        self.assertNotIn(page_url(3), self.fetcher.fetched)

    def test_missing_last_checked_scrapes_everything(self):
        write_json(self.dir / "cache.json", {"pages": 1})
        site = FakeSite(
            listings={page_url(1): [
                ListingEntry(game_url("a"), "A", T),
                ListingEntry(game_url("b"), "B", T + timedelta(hours=1)),
            ]},
            details={game_url("a"): {}, game_url("b"): {}},
        )

        result = self.controller(site).run("update")

        self.assertTrue(result.success)
        self.assertEqual([e["link"] for e in self.store()], [game_url("a"), game_url("b")])
        self.assertIsNotNone(read_json(self.dir / "cache.json")["lastChecked"])

    def test_unparseable_last_checked_scrapes_everything(self):
        write_json(self.dir / "cache.json", {"pages": 2, "lastChecked": "yesterday"})
        site = FakeSite(
            listings={
                page_url(1): [ListingEntry(game_url("a"), "A", T - timedelta(days=400))],
                page_url(2): [ListingEntry(game_url("b"), "B", T - timedelta(days=800))],
            },
            details={game_url("a"): {}, game_url("b"): {}},
        )

        self.controller(site).run("update")

        self.assertEqual(len(self.store()), 2)


class TestNewestCrawl(CrawlTestCase):
    """Test the newest-first walk following next-page links."""

    def test_renamed_release_updated_in_place(self):
        self.write_cache(pages=10)
        self.write_store([stored(1, "l", name="Game L")])
        site = FakeSite(
            listings={
                page_url(1): [
                    ListingEntry(game_url("l"), "Game L v2", T + timedelta(hours=1)),
                    ListingEntry(game_url("m"), "Game M", T + timedelta(hours=2)),
                ],
                page_url(2): [ListingEntry(game_url("x"), "Game X", T - timedelta(hours=1))],
            },
            details={game_url("l"): {}, game_url("m"): {}, game_url("x"): {}},
            next_pages={page_url(1): page_url(2), page_url(2): page_url(3)},
        )
        site.tracks_renames = True

        result = self.controller(site).run("newest")

        self.assertTrue(result.success)
        self.assertEqual([(e["id"], e["name"]) for e in self.store()], [(1, "Game L v2"), (2, "Game M")])
        self.assertNotIn(page_url(3), self.fetcher.fetched)

    def test_stops_without_next_link(self):
        self.write_cache(pages=10, last_checked=T - timedelta(days=365))
        site = FakeSite(
            listings={page_url(1): [ListingEntry(game_url("a"), "A", T)]},
            details={game_url("a"): {}},
        )

        result = self.controller(site).run("newest")

        self.assertEqual(result.pages_processed, 1)
        self.assertEqual(len(self.store()), 1)

    def test_missing_last_checked_walks_every_page(self):
        write_json(self.dir / "cache.json", {"pages": 10})
        site = FakeSite(
            listings={
                page_url(1): [ListingEntry(game_url("a"), "A", T)],
                page_url(2): [ListingEntry(game_url("b"), "B", T - timedelta(days=365))],
            },
            details={game_url("a"): {}, game_url("b"): {}},
            next_pages={page_url(1): page_url(2)},
        )

        result = self.controller(site).run("newest")

        self.assertEqual(result.pages_processed, 2)
        self.assertEqual([e["link"] for e in self.store()], [game_url("a"), game_url("b")])


class TestOtherModes(CrawlTestCase):
    """Test single fetch, probe and enumeration."""

    def test_fetch_by_url_then_update(self):
        url = game_url("q")
        site = FakeSite(details={url: {'name': "Game Q"}})
        self.config.query = url

        self.assertTrue(self.controller(site).run("fetch").success)
        self.assertEqual([(e["id"], e["name"]) for e in self.store()], [(1, "Game Q")])

        site.details[url] = {'name': "Game Q", 'size': 9.0}
        self.assertTrue(self.controller(site).run("fetch").success)
        self.assertEqual(len(self.store()), 1)
        self.assertEqual(self.store()[0]["size"], 9.0)

    def test_fetch_by_name_uses_search(self):
        site = FakeSite(details={game_url("s"): {}},
                        search={"Game S": [ListingEntry(game_url("s"), "Game S")]})
        self.config.query = "Game S"

        self.assertTrue(self.controller(site).run("fetch").success)
        self.assertEqual([e["name"] for e in self.store()], ["Game S"])

    def test_fetch_unknown_name(self):
        self.config.query = "Nothing"
        self.assertFalse(self.controller(FakeSite()).run("fetch").success)

    def test_probe_updates_page_count(self):
        self.write_cache(pages=2)
        self.controller(FakeSite(page_count=9)).run("probe")
        self.assertEqual(read_json(self.dir / "cache.json")["pages"], 9)

    def test_enumerate_builds_complete_file(self):
        site = FakeSite(catalog={
            f"{BASE}catalog/1/": [ListingEntry(game_url("a"), "A"), ListingEntry(game_url("b"), "B")],
            f"{BASE}catalog/2/": [ListingEntry(game_url("b"), "B"), ListingEntry(game_url("c"), "C")],
        })

        result = self.controller(site).run("enumerate")

        self.assertEqual(result.total_completed, 3)
        self.assertEqual(read_json(self.dir / "complete.json"), [
            {"id": 1, "name": "A", "link": game_url("a"), "page": 1},
            {"id": 2, "name": "B", "link": game_url("b"), "page": 1},
            {"id": 3, "name": "C", "link": game_url("c"), "page": 2},
        ])
        self.assertEqual(read_json(self.dir / "state.json"), {"lastCheckedIndex": 0})

    def test_invalid_mode(self):
        with self.assertRaises(ValueError):
            self.controller(FakeSite()).run("sideways")


if __name__ == '__main__':
    unittest.main()
