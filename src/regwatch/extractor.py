"""Main-content extraction and fingerprinting for fetched HTML."""

import hashlib
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from regwatch.constants import (
    CONTENT_SELECTORS,
    FALLBACK_TEXT_SELECTORS,
    MAX_CONTENT_LENGTH,
    MIN_CONTAINER_TEXT_LENGTH,
    MIN_CONTENT_LENGTH,
    MIN_FALLBACK_ELEMENT_LENGTH,
    MINIMAL_CONTENT_PREFIX,
    NOISE_SELECTORS,
    TRUNCATION_MARKER,
    UNTITLED,
)
from regwatch.models import FetchedPage

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def content_fingerprint(text: str) -> str:
    """SHA-256 hex digest of extracted text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ContentExtractor:
    """Turns raw HTML into a title, main-content text and raw links."""

    def __init__(
        self,
        content_selectors: Optional[List[str]] = None,
        max_length: int = MAX_CONTENT_LENGTH,
    ):
        self.content_selectors = content_selectors or list(CONTENT_SELECTORS)
        self.max_length = max_length

    def extract(self, html: str, url: str = "", final_url: Optional[str] = None) -> FetchedPage:
        """Extract a FetchedPage from HTML.

        Args:
            html: Raw page HTML
            url: URL that was requested
            final_url: URL after redirects, defaults to url

        Returns:
            FetchedPage with collapsed, truncated text and its fingerprint
        """
        soup = BeautifulSoup(html or "", "html.parser")

        title = self._extract_title(soup)
        links = [a.get("href") for a in soup.find_all("a", href=True) if a.get("href")]

        for element in soup.select(NOISE_SELECTORS):
            element.decompose()

        content = self._select_main_content(soup)
        if not content:
            content = self._aggregate_text_elements(soup)

        if len(content) < MIN_CONTENT_LENGTH:
            logger.warning(f"⚠️  Minimal content extracted from {url} ({len(content)} chars)")
            content = f"{MINIMAL_CONTENT_PREFIX} {title}\n{content}"

        content = collapse_whitespace(content)

        if len(content) > self.max_length:
            content = content[:self.max_length] + TRUNCATION_MARKER
            logger.debug(f"Content truncated to {self.max_length} chars for {url}")

        return FetchedPage(
            url=url,
            final_url=final_url or url,
            title=title,
            content=content,
            content_hash=content_fingerprint(content),
            links=links,
        )

    def _extract_title(self, soup: BeautifulSoup) -> str:
        if soup.title and soup.title.get_text(strip=True):
            return soup.title.get_text(strip=True)

        h1 = soup.find("h1")
        if h1 and h1.get_text(strip=True):
            return h1.get_text(strip=True)

        return UNTITLED

    def _select_main_content(self, soup: BeautifulSoup) -> str:
        """Return text of the first selector whose matches exceed the length floor."""
        for selector in self.content_selectors:
            matches = _outermost(soup.select(selector))
            if not matches:
                continue

            text = collapse_whitespace(" ".join(m.get_text(" ") for m in matches))
            if len(text) > MIN_CONTAINER_TEXT_LENGTH:
                logger.debug(f"Extracted {len(text)} chars using selector: {selector}")
                return text

        return ""

    def _aggregate_text_elements(self, soup: BeautifulSoup) -> str:
        """Join paragraph, list, cell and heading text that clears the noise floor."""
        parts = []
        for element in soup.select(FALLBACK_TEXT_SELECTORS):
            text = collapse_whitespace(element.get_text(" "))
            if len(text) > MIN_FALLBACK_ELEMENT_LENGTH:
                parts.append(text)
        return "\n".join(parts)


def _outermost(elements: List[Tag]) -> List[Tag]:
    """Drop matches nested inside another match of the same selector."""
    selected = set(id(e) for e in elements)
    return [
        e for e in elements
        if not any(id(parent) in selected for parent in e.parents)
    ]
