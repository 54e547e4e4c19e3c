"""Outbound link resolution, normalization and filtering."""

import logging
import re
from typing import Collection, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from regwatch.constants import DEFAULT_BLOCKED_PATH_PATTERNS

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http", "https")


def normalize_url(url: str) -> str:
    """Normalize URL by removing fragments and trailing slashes.

    Args:
        url: Absolute URL to normalize

    Returns:
        Normalized URL
    """
    parsed = urlparse(url)
    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    normalized = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    return normalized


class LinkFilter:
    """Turns raw hrefs into the absolute URLs a crawl should enqueue."""

    def __init__(
        self,
        base_url: str,
        allowed_path_patterns: Optional[List[str]] = None,
        blocked_path_patterns: Optional[List[str]] = None,
        follow_external_links: bool = False,
    ):
        """Initialize the filter.

        Args:
            base_url: Crawl start URL; its host is the crawl's own domain
            allowed_path_patterns: If non-empty, only URLs matching one are kept
            blocked_path_patterns: URLs matching any of these are dropped
            follow_external_links: Keep links to other hosts
        """
        self.base_domain = urlparse(base_url).hostname or ""
        self.follow_external_links = follow_external_links
        if blocked_path_patterns is None:
            blocked_path_patterns = DEFAULT_BLOCKED_PATH_PATTERNS
        self.blocked = [re.compile(p, re.IGNORECASE) for p in blocked_path_patterns]
        self.allowed = [re.compile(p, re.IGNORECASE) for p in (allowed_path_patterns or [])]

    def filter(
        self,
        page_url: str,
        hrefs: Iterable[str],
        visited: Collection[str] = (),
        pending: Collection[str] = (),
    ) -> List[str]:
        """Resolve and filter the hrefs found on a page.

        Args:
            page_url: URL of the page the links were found on
            hrefs: Raw href attribute values
            visited: URLs already fetched or in flight
            pending: URLs already waiting in the frontier

        Returns:
            Deduplicated list of normalized absolute URLs, in discovery order
        """
        results: List[str] = []
        seen = set()

        for href in hrefs:
            url = self.resolve(page_url, href)
            if url is None or url in seen:
                continue
            if url in visited or url in pending:
                continue
            if not self.is_candidate(url):
                continue
            seen.add(url)
            results.append(url)

        return results

    def resolve(self, page_url: str, href: Optional[str]) -> Optional[str]:
        """Resolve one href to a normalized absolute http(s) URL, or None."""
        if not href:
            return None

        href = href.strip()
        if not href or href.startswith("#"):
            return None

        try:
            absolute = urljoin(page_url, href)
            parsed = urlparse(absolute)
            # Accessing .port validates it
            parsed.port
        except ValueError:
            return None

        if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.netloc:
            return None

        return normalize_url(absolute)

    def is_candidate(self, url: str) -> bool:
        """Apply the domain, blocked and allowed rules to a normalized URL."""
        host = urlparse(url).hostname or ""
        if not self.follow_external_links and host != self.base_domain:
            return False

        if any(p.search(url) for p in self.blocked):
            return False

        if self.allowed and not any(p.search(url) for p in self.allowed):
            return False

        return True
