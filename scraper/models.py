"""
Data models for the repack scraper.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from utils import format_timestamp, parse_timestamp


class MalformedRecord(ValueError):
    """Stored entry that can't be turned into an ItemRecord."""


def _as_str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def _as_direct(value) -> Dict[str, List[str]]:
    if not isinstance(value, dict):
        return {}
    return {str(host): _as_str_list(urls) for host, urls in value.items()}


@dataclass
class ItemRecord:
    """One scraped release."""
    name: str
    link: str
    id: Optional[int] = None
    date: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    creator: List[str] = field(default_factory=list)
    original: str = ""
    packed: str = ""
    size: float = 0.0
    magnet: Optional[str] = None
    direct: Dict[str, List[str]] = field(default_factory=dict)
    updated: Optional[datetime] = None

    @property
    def verified(self) -> bool:
        """True iff the record has a magnet link and a positive size."""
        return bool(self.magnet) and self.size > 0

    def has_direct_links(self) -> bool:
        return any(self.direct.values()) if self.direct else False

    def has_useful_data(self) -> bool:
        """Whether extraction produced anything worth saving."""
        return self.verified or self.size > 0 or bool(self.magnet) or bool(self.direct)

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'link': self.link,
            'date': format_timestamp(self.date),
            'tags': list(self.tags),
            'creator': list(self.creator),
            'original': self.original,
            'packed': self.packed,
            'size': self.size,
            'verified': self.verified,
            'magnet': self.magnet,
            'direct': {host: list(urls) for host, urls in self.direct.items()},
            'lastChecked': format_timestamp(self.last_checked),
        }
        if self.updated is not None:
            data['updated'] = format_timestamp(self.updated)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ItemRecord":
        """
        Validate and normalize a stored entry.

        Raises:
            MalformedRecord: If id or link is missing or invalid
        """
        if not isinstance(data, dict):
            raise MalformedRecord(f"entry is not an object: {data!r}")

        raw_id = data.get('id')
        try:
            record_id = int(raw_id)
        except (TypeError, ValueError):
            raise MalformedRecord(f"invalid id: {raw_id!r}")
        if isinstance(raw_id, bool) or record_id <= 0:
            raise MalformedRecord(f"invalid id: {raw_id!r}")

        link = data.get('link')
        if not isinstance(link, str) or not link.strip():
            raise MalformedRecord(f"missing link for id {record_id}")

        try:
            size = round(float(data.get('size') or 0), 1)
        except (TypeError, ValueError):
            size = 0.0

        magnet = data.get('magnet')
        return cls(
            id=record_id,
            name=str(data.get('name') or ''),
            link=link,
            date=parse_timestamp(data.get('date')),
            last_checked=parse_timestamp(data.get('lastChecked')),
            tags=_as_str_list(data.get('tags')),
            creator=_as_str_list(data.get('creator')),
            original=str(data.get('original') or ''),
            packed=str(data.get('packed') or ''),
            size=size,
            magnet=magnet if isinstance(magnet, str) and magnet else None,
            direct=_as_direct(data.get('direct')),
            updated=parse_timestamp(data.get('updated')),
        )


@dataclass
class CacheRecord:
    """Pagination count and incremental high-water mark."""
    pages: int = 0
    last_checked: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'pages': self.pages,
            'lastChecked': format_timestamp(self.last_checked),
        }


@dataclass
class ListingEntry:
    """Candidate item discovered on a listing page."""
    link: str
    name: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class FetchedPage:
    """Rendered page content after one navigation."""
    url: str
    final_url: str
    html: str


@dataclass
class CrawlResult:
    """Result of a crawl run."""
    success: bool
    mode: str
    started_at: str
    completed_at: str
    pages_processed: int
    total_discovered: int
    total_completed: int
    total_skipped: int
    total_failed: int
    failed_links: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    items_per_hour: float = 0.0


@dataclass
class DiffReport:
    """Link-level difference between the store and a complete enumeration."""
    missing: List[dict] = field(default_factory=list)
    orphaned: List[ItemRecord] = field(default_factory=list)
    duplicates: List[ItemRecord] = field(default_factory=list)


@dataclass
class DriftReport:
    """Result of a date-drift sweep."""
    total: int = 0
    matched: int = 0
    mismatched: int = 0
    invalid_json: int = 0
    no_website: int = 0
    fixed: int = 0
    data_changes: int = 0
    skipped: int = 0
    failed: int = 0
    started_from_index: int = 0
