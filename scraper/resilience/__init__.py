"""
Resilience components for the repack scraper.
"""

from .progress_tracker import ProgressTracker
from .crawl_cache import CrawlCache
from .retry_handler import RetryHandler

__all__ = [
    'ProgressTracker',
    'CrawlCache',
    'RetryHandler'
]
