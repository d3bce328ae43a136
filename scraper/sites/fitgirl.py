"""
FitGirl repacks (WordPress blog) scraping rules.
"""

import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote_plus

from models import ItemRecord, ListingEntry
from sites.base import SiteStrategy
from utils import compute_size, parse_timestamp, split_list, utc_now


class FitGirlSite(SiteStrategy):
    """Scraping rules for the FitGirl repacks blog."""

    name = "fitgirl"
    tracks_renames = True
    has_exact_dates = True

    CONTENT_SELECTOR = ".entry-content, .post-content, article, .content"
    MIRRORS_HEADING = "Download Mirrors (Direct Links)"
    MIRROR_HOSTS = ("datanodes", "fuckingfast")

    def listing_url(self, page: int) -> str:
        return self.base_url if page <= 1 else f"{self.base_url}page/{page}/"

    def parse_listing(self, html: str) -> List[ListingEntry]:
        """
        Extract release articles from a blog page.

        The first article is the pinned upcoming-repacks post and update
        announcements are not releases; both are skipped.
        """
        soup = self.soup(html)
        entries = []
        for article in soup.select('article')[1:]:
            time_elem = article.select_one('time.entry-date')
            title_link = article.select_one('.entry-title > a')
            if not time_elem or not title_link:
                continue

            timestamp = parse_timestamp(time_elem.get('datetime'))
            name = title_link.get_text(strip=True)
            href = title_link.get('href')
            if not timestamp or not name or not href:
                continue
            if name.upper().startswith('UPDATE') or 'UPDATED' in name.upper():
                continue

            entries.append(ListingEntry(link=self.absolute(href), name=name, timestamp=timestamp))
        return entries

    def parse_page_count(self, html: str) -> Optional[int]:
        soup = self.soup(html)
        pages = []
        for link in soup.select('.pagination a.page-numbers, .nav-links a.page-numbers'):
            text = link.get_text(strip=True).replace(',', '')
            if text.isdigit():
                pages.append(int(text))
        return max(pages) if pages else None

    def next_page_url(self, html: str) -> Optional[str]:
        next_button = self.soup(html).select_one('.pagination .next')
        if next_button and next_button.get('href'):
            return self.absolute(next_button['href'])
        return None

    # A-Z list

    def catalog_url(self, page: int) -> str:
        return f"{self.base_url}all-my-repacks-a-z/?lcp_page0={page}#lcp_instance_0"

    def parse_catalog(self, html: str) -> List[ListingEntry]:
        catalog = self.soup(html).select_one('ul.lcp_catlist')
        if not catalog:
            return []
        entries = []
        for link in catalog.select('li a'):
            name = link.get_text(strip=True)
            href = link.get('href')
            if name and href:
                entries.append(ListingEntry(link=self.absolute(href), name=name))
        return entries

    def catalog_page_count_url(self) -> str:
        return f"{self.base_url}all-my-repacks-a-z"

    def parse_catalog_page_count(self, html: str) -> Optional[int]:
        """Last page number from the list paginator (its penultimate link)."""
        paginator = self.soup(html).select_one('.lcp_paginator')
        if not paginator:
            return None
        links = paginator.select('a')
        if len(links) < 2:
            return 1
        title = links[-2].get('title') or links[-2].get_text(strip=True)
        return int(title) if title and title.isdigit() else 1

    # Detail pages

    def extract_detail(self, html: str, entry: ListingEntry) -> Optional[ItemRecord]:
        soup = self.soup(html)
        content = soup.select_one(self.CONTENT_SELECTOR)
        if content is None:
            print(f"  No content block found for {entry.name or entry.link}")
            return None

        tags: List[str] = []
        creator: List[str] = []
        original = ""
        packed = ""

        for line_break in content.find_all('br'):
            line_break.replace_with('\n')
        text = re.sub(r'\n+', '\n', content.get_text())
        for line in text.split('\n'):
            if re.search(r'genres|tags', line, re.IGNORECASE):
                tags = split_list(re.sub(r'.*:', '', line))
            if re.search(r'compan(y|ies)', line, re.IGNORECASE):
                creator = split_list(re.sub(r'.*compan(y|ies).*?:', '', line, flags=re.IGNORECASE))
            if re.search(r'original size', line, re.IGNORECASE):
                original = re.sub(r'.*original size.*?:', '', line, flags=re.IGNORECASE).strip()
            if re.search(r'repack size', line, re.IGNORECASE):
                packed = re.sub(r'.*repack size.*?:', '', line, flags=re.IGNORECASE)
                packed = re.sub(r'\[.*\]', '', packed).strip()

        magnet, direct = self._download_links(soup)
        name = entry.name or self.extract_title(html) or entry.link

        return ItemRecord(
            name=name,
            link=entry.link,
            date=self.extract_date(html) or utc_now(),
            last_checked=utc_now(),
            tags=tags,
            creator=creator,
            original=original,
            packed=packed,
            size=compute_size(original, packed),
            magnet=magnet,
            direct=direct,
        )

    def extract_date(self, html: str):
        time_elem = self.soup(html).select_one('time.entry-date')
        if time_elem is None:
            return None
        return parse_timestamp(time_elem.get('datetime'))

    def extract_download_links(self, html: str) -> Tuple[Optional[str], Dict[str, List[str]]]:
        return self._download_links(self.soup(html))

    def _download_links(self, soup) -> Tuple[Optional[str], Dict[str, List[str]]]:
        magnet_link = soup.select_one('a[href*="magnet"]')
        magnet = magnet_link.get('href') if magnet_link else None

        direct: Dict[str, List[str]] = {}
        heading = next(
            (h for h in soup.find_all('h3') if self.MIRRORS_HEADING in h.get_text()),
            None
        )
        mirror_list = None
        if heading is not None:
            mirror_list = heading.find_next_sibling('ul')
            if mirror_list is None and heading.parent is not None:
                mirror_list = heading.parent.find('ul', recursive=False)
        if mirror_list is None:
            return magnet or None, direct

        for item in mirror_list.select('li'):
            text = item.get_text().lower()
            host = next((h for h in self.MIRROR_HOSTS if h in text), None)
            if not host:
                continue
            urls = direct.setdefault(host, [])
            spoiler = item.select_one('.su-spoiler-content')
            if spoiler:
                urls.extend(self.absolute(a['href']) for a in spoiler.select('a') if a.get('href'))

        return magnet or None, direct

    def extract_title(self, html: str) -> Optional[str]:
        soup = self.soup(html)
        title = (soup.select_one('h1.entry-title') or soup.select_one('h1')
                 or soup.select_one('.entry-title > a'))
        if title:
            text = title.get_text(strip=True)
            return text or None
        return None

    # Search

    def search_url(self, term: str) -> str:
        return f"{self.base_url}?s={quote_plus(term)}"

    def parse_search_results(self, html: str, term: str) -> List[ListingEntry]:
        wanted = term.lower()
        results = []
        for link in self.soup(html).select('article .entry-title > a'):
            name = link.get_text(strip=True)
            if wanted in name.lower() and link.get('href'):
                results.append(ListingEntry(link=self.absolute(link['href']), name=name))
        return results
