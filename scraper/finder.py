"""
Search helpers over stored records.
"""

from datetime import datetime, timezone
from typing import Dict, List

from models import ItemRecord

MAX_RESULTS = 40

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(records: List[ItemRecord]) -> List[ItemRecord]:
    return sorted(records, key=lambda r: r.date or _OLDEST, reverse=True)


def search(records: List[ItemRecord], term: str, limit: int = MAX_RESULTS) -> List[ItemRecord]:
    """
    Find records whose name or tags contain term (case-insensitive).

    Returns:
        Up to limit matches, newest first
    """
    wanted = term.strip().lower()
    found = [
        r for r in records
        if wanted in r.name.lower() or wanted in ' '.join(r.tags).lower()
    ]
    return _newest_first(found)[:limit]


def newest_and_largest(records: List[ItemRecord], limit: int = MAX_RESULTS) -> Dict[str, List[ItemRecord]]:
    return {
        'newest': _newest_first(records)[:limit],
        'largest': sorted(records, key=lambda r: r.size, reverse=True)[:limit],
    }
