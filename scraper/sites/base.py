"""
Site strategy interface.
A strategy knows where a site's listing pages live and how to turn its
markup into listing entries and item records. It never fetches anything.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from models import ItemRecord, ListingEntry


class SiteStrategy(ABC):
    """Link discovery and detail extraction rules for one site."""

    name = "site"

    # Listing names are the site's canonical titles (renames are tracked)
    tracks_renames = False

    # Detail pages carry an exact publication timestamp
    has_exact_dates = False

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def absolute(self, href: str) -> str:
        return urljoin(self.base_url, href)

    @staticmethod
    def soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", 'html.parser')

    # Paged listing

    @abstractmethod
    def listing_url(self, page: int) -> str:
        """URL of listing page number page (1-based)."""

    @abstractmethod
    def parse_listing(self, html: str) -> List[ListingEntry]:
        """Extract candidate item links from a listing page."""

    def page_count_url(self) -> str:
        return self.listing_url(1)

    def parse_page_count(self, html: str) -> Optional[int]:
        """Total listing pages, None if pagination can't be found."""
        return None

    # Newest-first walk following next-page links

    def newest_url(self) -> str:
        return self.listing_url(1)

    def parse_newest(self, html: str) -> List[ListingEntry]:
        return self.parse_listing(html)

    def next_page_url(self, html: str) -> Optional[str]:
        return None

    # Complete A-Z enumeration

    def catalog_url(self, page: int) -> str:
        return self.listing_url(page)

    def parse_catalog(self, html: str) -> List[ListingEntry]:
        return self.parse_listing(html)

    def catalog_page_count_url(self) -> str:
        return self.page_count_url()

    def parse_catalog_page_count(self, html: str) -> Optional[int]:
        return self.parse_page_count(html)

    # Detail pages

    @abstractmethod
    def extract_detail(self, html: str, entry: ListingEntry) -> Optional[ItemRecord]:
        """
        Build a record from a detail page.

        Returns:
            ItemRecord, or None when the page lacks the expected content block
        """

    def extract_date(self, html: str):
        """Exact publication timestamp of a detail page, if the site has one."""
        return None

    def extract_download_links(self, html: str) -> Tuple[Optional[str], Dict[str, List[str]]]:
        """Magnet URI and direct mirrors of a detail page."""
        return None, {}

    def extract_title(self, html: str) -> Optional[str]:
        return None

    # Search

    def search_url(self, term: str) -> Optional[str]:
        return None

    def parse_search_results(self, html: str, term: str) -> List[ListingEntry]:
        return []
