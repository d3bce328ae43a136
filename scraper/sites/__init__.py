"""
Site strategies: link discovery and detail extraction per source site.
"""

from .base import SiteStrategy
from .dodi import DodiSite
from .fitgirl import FitGirlSite

SITES = {
    FitGirlSite.name: FitGirlSite,
    DodiSite.name: DodiSite,
}


def get_site(name: str, base_url: str) -> SiteStrategy:
    """
    Create the strategy for a site.

    Raises:
        ValueError: If the site name is unknown
    """
    try:
        site_class = SITES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown site: {name}. Must be one of {sorted(SITES)}")
    return site_class(base_url)


__all__ = [
    'SiteStrategy',
    'FitGirlSite',
    'DodiSite',
    'SITES',
    'get_site'
]
