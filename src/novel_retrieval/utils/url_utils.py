"""URL manipulation utilities."""

import re
from urllib.parse import urljoin, urlparse, urlunparse

_URL_PATTERN = re.compile(
    r"^(https?://)?"
    r"((([a-zA-Z0-9\-]+\.)+[a-zA-Z]{2,})|"  # domain
    r"localhost|"
    r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # IPv4
    r"(:\d+)?"
    r"(/[\w\-.~:/?#\[\]@!$&'()*+,;=%]*)?$"
)


def is_valid_url(url: str | None) -> bool:
    """Check the shape of a seed URL (scheme optional)."""
    if not url or not url.strip():
        return False
    return bool(_URL_PATTERN.match(url.strip()))


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when the URL has no scheme."""
    url = url.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://", url):
        return "https://" + url
    return url


def normalize_url(url: str) -> str:
    """Normalize a URL by removing fragments and trailing slashes."""
    parsed = urlparse(url.strip())
    normalized = parsed._replace(fragment="")
    # Keep the root path
    path = normalized.path.rstrip("/") if normalized.path != "/" else "/"
    normalized = normalized._replace(path=path)
    return urlunparse(normalized)


def make_absolute(base_url: str, href: str) -> str:
    """Convert a potentially relative URL to absolute."""
    href = href.strip()
    if not base_url:
        return href
    return urljoin(base_url, href)
