"""
URL Utils
=========
URL detection helpers shared by the grader and the anti-gaming guards.

Responsibilities:
    - Find http(s) URLs embedded in free text
    - Extract the host of a URL (lower-cased, without "www.")
    - Detect known test / placeholder URLs
"""
import re
from typing import List, Optional
from urllib.parse import urlparse

from bountyboard.core.constants import PLACEHOLDER_HOSTS, PLACEHOLDER_PATH_FRAGMENT

_URL_RE = re.compile(r"https?://[^\s<>\"')\]]+", re.I)


def find_urls(text: Optional[str]) -> List[str]:
    """Return every http(s) URL found in ``text`` (in order of appearance)."""
    if not text:
        return []
    return _URL_RE.findall(text)


def contains_url(*texts: Optional[str]) -> bool:
    """True if any of the given texts embeds at least one URL."""
    return any(find_urls(t) for t in texts)


def url_host(url: str) -> str:
    """Lower-cased host of ``url`` with a leading "www." removed. Empty on parse failure."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_placeholder_url(url: str) -> bool:
    """
    Detect obviously fake submission URLs.

    A URL is a placeholder when its host is a known test host or its path
    contains a "/test/" segment. Unparseable strings are not placeholders.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.netloc:
        return False
    host = (parsed.hostname or "").lower()
    if host in PLACEHOLDER_HOSTS:
        return True
    return PLACEHOLDER_PATH_FRAGMENT in (parsed.path or "")
