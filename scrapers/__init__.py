"""
Scrapers Module
"""
from .base import BaseScraper, RateLimitedScraper
from .jgi_scraper import JGIPortalScraper, PageResult
from .normalizers import (
    NormalizationContext,
    UpstreamShape,
    UPSTREAM_SHAPES,
    detect_shape,
    normalize_record,
)

__all__ = [
    # Base
    "BaseScraper",
    "RateLimitedScraper",
    # JGI
    "JGIPortalScraper",
    "PageResult",
    # Normalization
    "NormalizationContext",
    "UpstreamShape",
    "UPSTREAM_SHAPES",
    "detect_shape",
    "normalize_record",
]
