"""
URL helpers shared by the crawler, the search-form probe and the collector.
"""
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse


def normalize_url(base_url: str, target: str) -> Optional[str]:
    """
    Resolve target against base_url and strip the fragment.

    Returns None when the result is not an http(s) URL.
    """
    if not target:
        return None
    try:
        absolute = urljoin(base_url, target.strip())
        parts = urlparse(absolute)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path or "/"
    return urlunparse((parts.scheme, parts.netloc, path, parts.params, parts.query, ""))


def is_same_origin_or_subdomain(base_url: str, target: str) -> bool:
    """True when target shares the origin of base_url or lives on one of its subdomains."""
    try:
        base = urlparse(base_url)
        other = urlparse(urljoin(base_url, target))
    except ValueError:
        return False
    base_host = (base.hostname or "").lower()
    target_host = (other.hostname or "").lower()
    if not base_host or not target_host:
        return False
    if (other.scheme, other.netloc) == (base.scheme, base.netloc):
        return True
    return target_host == base_host or target_host.endswith(f".{base_host}")


def set_query_param(url: str, name: str, value: str) -> str:
    """Set (or replace) a single query parameter, keeping the other ones in order."""
    parts = urlparse(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    replaced = False
    updated = []
    for key, current in params:
        if key == name:
            if not replaced:
                updated.append((key, value))
                replaced = True
            continue
        updated.append((key, current))
    if not replaced:
        updated.append((name, value))
    path = parts.path or "/"
    return urlunparse((parts.scheme, parts.netloc, path, parts.params, urlencode(updated), ""))
