"""
Shared validation utilities for API endpoints.
"""

from urllib.parse import urlparse
from fastapi import Query

ALLOWED_FEED_SCHEMES = ("http", "https")


def validate_feed_url(value: str) -> str:
    """
    Check that a feed URL is an absolute http(s) URL.

    Raises:
        ValueError: If the URL is malformed or uses another scheme
    """
    value = (value or "").strip()
    if len(value) > 2048:
        raise ValueError("Feed URL is too long")
    parsed = urlparse(value)
    if parsed.scheme not in ALLOWED_FEED_SCHEMES:
        raise ValueError("Feed URL must use http or https")
    if not parsed.netloc:
        raise ValueError("Feed URL must include a host")
    return value


# Query parameter dependencies for common validations
FeedIdParam = Query(None, ge=1, le=2147483647, description="Feed ID filter")
LimitParam = Query(100, ge=1, le=1000, description="Maximum items to return")
SkipParam = Query(0, ge=0, le=100000, description="Number of items to skip")
