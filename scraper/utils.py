"""
Shared utility functions for the scraper.
"""

import calendar
import json
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import unquote, urlparse


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored or scraped timestamp into an aware UTC datetime.

    Args:
        value: ISO-8601 string (with 'Z', an offset, or naive = UTC) or datetime

    Returns:
        Aware UTC datetime, or None if the value can't be parsed
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime as ISO-8601 UTC with milliseconds.

    Examples: 2024-05-01T09:00:00.000Z
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{dt.microsecond // 1000:03d}Z"


def same_second(a: Optional[datetime], b: Optional[datetime]) -> bool:
    """Compare two timestamps at second precision."""
    if a is None or b is None:
        return False
    return a.replace(microsecond=0) == b.replace(microsecond=0)


def is_today(dt: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Check whether a timestamp falls on the current UTC date."""
    if dt is None:
        return False
    now = now or utc_now()
    return dt.date() == now.date()


def parse_size_number(text: Optional[str]) -> float:
    """
    Extract the first number from a size string.

    Args:
        text: Size string (e.g., 'from 10,5 GB [Selective Download]')

    Returns:
        Parsed number, 0 when none is found
    """
    if not text:
        return 0.0
    match = re.search(r'(\d+(\.\d+)?)', text.replace(',', '.'))
    return float(match.group(1)) if match else 0.0


def compute_size(original: Optional[str], packed: Optional[str]) -> float:
    """
    Derive the normalized size in GB from the original and repack size strings.

    The largest of the two numbers wins; it is divided by 1024 only when the
    original size is reported in MB.
    """
    size = max(parse_size_number(packed), parse_size_number(original))
    if size > 0 and original and 'MB' in original:
        size /= 1024
    return size


_RELATIVE_TIME = re.compile(
    r'(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago', re.IGNORECASE
)


def _subtract_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def relative_time_to_datetime(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Convert a relative time like '3 days ago' into an absolute UTC datetime.

    Returns:
        Datetime, or None if the text holds no relative time
    """
    if not text:
        return None
    match = _RELATIVE_TIME.search(text)
    if not match:
        return None

    now = now or utc_now()
    value = int(match.group(1))
    unit = match.group(2).lower()

    if unit == 'month':
        return _subtract_months(now, value)
    if unit == 'year':
        return _subtract_months(now, value * 12)

    deltas = {
        'second': timedelta(seconds=value),
        'minute': timedelta(minutes=value),
        'hour': timedelta(hours=value),
        'day': timedelta(days=value),
        'week': timedelta(weeks=value),
    }
    return now - deltas[unit]


def split_list(text: Optional[str], separator: str = ',') -> list:
    """Split a comma separated label value into a clean list."""
    if not text:
        return []
    return [part.strip() for part in text.split(separator) if part.strip()]


def name_from_url(url: str) -> str:
    """
    Build a fallback title from the last URL path segment.

    Args:
        url: Item URL (e.g., https://site/some-game-title/)

    Returns:
        Title (e.g., 'Some game title')
    """
    segments = [s for s in urlparse(url).path.split('/') if s]
    if not segments:
        return ''
    name = unquote(segments[-1])
    name = re.sub(r'\.[^/.]+$', '', name).replace('-', ' ').strip()
    return name[:1].upper() + name[1:]


def write_json_atomic(path: Union[str, Path], data: Any):
    """
    Atomically write JSON to disk: write to temp file, then replace.

    Raises:
        OSError: If the file can't be written
    """
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    temp_file = path.with_name(f"{path.stem}.tmp{path.suffix}")
    try:
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())  # Ensure data is written to disk
        temp_file.replace(path)
    except Exception:
        if temp_file.exists():
            try:
                temp_file.unlink()
            except OSError:
                pass
        raise
