"""Utility functions and classes."""

from novel_retrieval.utils.rate_limiter import RateLimiter
from novel_retrieval.utils.url_utils import (
    ensure_scheme,
    is_valid_url,
    make_absolute,
    normalize_url,
)

__all__ = [
    "RateLimiter",
    "ensure_scheme",
    "is_valid_url",
    "make_absolute",
    "normalize_url",
]
