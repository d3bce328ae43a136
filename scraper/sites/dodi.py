"""
DODI repacks as listed on the 1337x torrent index.
"""

import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from models import ItemRecord, ListingEntry
from sites.base import SiteStrategy
from utils import compute_size, relative_time_to_datetime, split_list, utc_now


def title_from_torrent_link(link: str) -> str:
    """
    Build a readable title from a torrent URL slug.

    Args:
        link: Torrent URL (e.g., /torrent/123/Some-Game-v1-2-MULTi12-From-10-GB-DODI-Repack/)

    Returns:
        Title (e.g., 'Some Game'), '' if the slug is missing
    """
    parts = link.rstrip('/').split('/')
    if len(parts) < 2 or not parts[-1]:
        return ''
    title = parts[-1]
    title = re.sub(r'^\d+-', '', title)
    title = title.replace('-', ' ')
    title = re.sub(r'DODI Repack$', '', title)
    title = re.sub(r'MULTi\d+', '', title)
    title = re.sub(r'From \d+\.?\d* GB', '', title)
    title = re.sub(r'v\d+\.?\d*\.?\d*', '', title)
    title = re.sub(r'Build \d+', '', title)
    return re.sub(r'\s+', ' ', title).strip()


class DodiSite(SiteStrategy):
    """Scraping rules for DODI uploads on 1337x."""

    name = "dodi"
    LISTING_PATH = "DODI-torrents/page/"

    def listing_url(self, page: int) -> str:
        return f"{self.base_url}{self.LISTING_PATH}{max(page, 1)}/"

    def parse_listing(self, html: str) -> List[ListingEntry]:
        entries = []
        seen = set()
        for link in self.soup(html).select('table.table-list tbody tr td.name a'):
            href = link.get('href') or ''
            if '/torrent/' not in href:
                continue
            full_link = self.absolute(href)
            if full_link in seen:
                continue
            seen.add(full_link)
            entries.append(ListingEntry(link=full_link, name=title_from_torrent_link(full_link)))
        return entries

    def parse_page_count(self, html: str) -> Optional[int]:
        soup = self.soup(html)
        last = soup.select_one('.pagination li.last a')
        candidates = [last] if last else soup.select('.pagination a')
        pages = []
        for link in candidates:
            match = re.search(r'/(\d+)/?$', link.get('href') or '')
            if match:
                pages.append(int(match.group(1)))
            elif link.get_text(strip=True).isdigit():
                pages.append(int(link.get_text(strip=True)))
        return max(pages) if pages else None

    def next_page_url(self, html: str) -> Optional[str]:
        for link in self.soup(html).select('.pagination li a'):
            if link.get_text(strip=True) == '>>' and link.get('href'):
                return self.absolute(link['href'])
        return None

    def extract_detail(self, html: str, entry: ListingEntry) -> Optional[ItemRecord]:
        soup = self.soup(html)
        description = soup.select_one('#description')
        if description is None:
            print(f"  #description not found on {entry.link}")
            return None

        text = description.get_text('\n')

        genre_match = re.search(r'Genre:\s*([^\n]+)', text, re.IGNORECASE)
        tags = split_list(genre_match.group(1)) if genre_match else []

        creator: List[str] = []
        for label in ('Developer', 'Publisher'):
            match = re.search(rf'{label}\s*:\s*([^\n]+)', text, re.IGNORECASE)
            for name in split_list(match.group(1) if match else ''):
                if name not in creator:
                    creator.append(name)

        original_match = re.search(r'Final Size\s*:\s*([\d.]+)\s*GB', text, re.IGNORECASE)
        packed_match = re.search(r'Repack Size\s*:\s*From\s*([\d.]+)\s*GB', text, re.IGNORECASE)
        original = f"{original_match.group(1)} GB" if original_match else ""
        packed = f"{packed_match.group(1)} GB" if packed_match else ""

        magnet, direct = self._download_links(soup)

        return ItemRecord(
            name=self.extract_title(html) or entry.name or entry.link,
            link=entry.link,
            date=relative_time_to_datetime(self._info_value(soup, 'Date uploaded')),
            updated=relative_time_to_datetime(self._info_value(soup, 'Last checked')),
            last_checked=utc_now(),
            tags=tags,
            creator=creator,
            original=original,
            packed=packed,
            size=compute_size(original, packed),
            magnet=magnet,
            direct=direct,
        )

    @staticmethod
    def _info_value(soup, label: str) -> str:
        """Value next to a <strong>label</strong> in the torrent info box."""
        for item in soup.select('.box-info ul.list li'):
            strong = item.find('strong')
            span = item.find('span')
            if strong and span and strong.get_text(strip=True).rstrip(':').strip() == label:
                return span.get_text(strip=True)
        return ""

    def extract_download_links(self, html: str) -> Tuple[Optional[str], Dict[str, List[str]]]:
        return self._download_links(self.soup(html))

    @staticmethod
    def _download_links(soup) -> Tuple[Optional[str], Dict[str, List[str]]]:
        magnet_link = soup.select_one('a[href^="magnet:"]')
        return (magnet_link.get('href') if magnet_link else None) or None, {}

    def extract_title(self, html: str) -> Optional[str]:
        soup = self.soup(html)
        if not soup.title or not soup.title.string:
            return None
        title = soup.title.string
        title = re.sub(r'^Download\s+', '', title, flags=re.IGNORECASE)
        title = re.sub(r'\s*\(From.*$', '', title)
        title = re.sub(r'\[DODI Repack\]', '', title, flags=re.IGNORECASE)
        title = re.sub(r'\s*Torrent\s*\|\s*1337x', '', title, flags=re.IGNORECASE)
        title = re.sub(r'\s+', ' ', title).strip()
        return title or None

    def search_url(self, term: str) -> str:
        return f"{self.base_url}search/{quote(term + ' DODI')}/1/"

    def parse_search_results(self, html: str, term: str) -> List[ListingEntry]:
        wanted = term.lower()
        return [entry for entry in self.parse_listing(html)
                if wanted in entry.name.lower() or wanted in entry.link.lower()]
