"""Heuristic article vs listing/category page classification."""

import json
import logging
import re
from typing import Any, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from regwatch.constants import (
    ARTICLE_SCORE_THRESHOLD,
    ARTICLE_SCORE_WEIGHTS,
    CATEGORY_PATH_PATTERNS,
    DEFAULT_ARTICLE_INDICATORS,
    JSON_LD_ARTICLE_TYPES,
    MIN_ARTICLE_BODY_LENGTH,
    MIN_ARTICLE_PATH_SEGMENTS,
    MIN_INDICATOR_CONTENT_LENGTH,
)

logger = logging.getLogger(__name__)


class ArticleClassifier:
    """Decides whether a page is an article worth persisting.

    Disabled unless the source sets skip_category_pages, in which case
    every page counts as an article.
    """

    def __init__(
        self,
        enabled: bool = False,
        blocked_path_patterns: Optional[List[str]] = None,
        article_indicators: Optional[List[str]] = None,
    ):
        """Initialize the classifier.

        Args:
            enabled: Whether listing pages should be told apart at all
            blocked_path_patterns: Source-specific regexes that mark non-article paths
            article_indicators: CSS selectors that suggest an article, replacing the defaults
        """
        self.enabled = enabled
        self.blocked_path_patterns = [
            re.compile(p, re.IGNORECASE) for p in (blocked_path_patterns or [])
        ]
        self.category_patterns = [re.compile(p, re.IGNORECASE) for p in CATEGORY_PATH_PATTERNS]
        self.indicators = list(article_indicators or DEFAULT_ARTICLE_INDICATORS)

    def is_article(self, url: str, soup: BeautifulSoup) -> bool:
        """Classify a parsed page.

        Args:
            url: Page URL
            soup: Parsed page HTML

        Returns:
            True if the page should be persisted as an article
        """
        if not self.enabled:
            return True

        path = urlparse(url).path or "/"

        if self._is_blocked_path(path):
            logger.debug(f"Listing page by URL pattern: {url}")
            return False

        segments = [s for s in path.split("/") if s]
        if len(segments) < MIN_ARTICLE_PATH_SEGMENTS:
            return False

        body = soup.body or soup
        if len(body.get_text(strip=True)) < MIN_ARTICLE_BODY_LENGTH:
            return False

        score = self.score(soup)
        logger.debug(f"Article score {score} for {url}")
        return score >= ARTICLE_SCORE_THRESHOLD

    def score(self, soup: BeautifulSoup) -> int:
        """Sum the structural, schema and Open Graph signals for a page."""
        score = 0

        for indicator in self.indicators:
            elements = soup.select(indicator)
            if not elements:
                continue

            score += ARTICLE_SCORE_WEIGHTS["indicator"]
            if "content" in indicator or indicator == "article":
                text = elements[0].get_text(strip=True)
                if len(text) > MIN_INDICATOR_CONTENT_LENGTH:
                    score += ARTICLE_SCORE_WEIGHTS["content_bonus"]

        if self._has_article_schema(soup):
            score += ARTICLE_SCORE_WEIGHTS["json_ld_article"]

        og_type = soup.find("meta", attrs={"property": "og:type"})
        if og_type and (og_type.get("content") or "").strip().lower() == "article":
            score += ARTICLE_SCORE_WEIGHTS["og_article"]

        return score

    def _is_blocked_path(self, path: str) -> bool:
        return any(
            p.search(path) for p in self.blocked_path_patterns + self.category_patterns
        )

    def _has_article_schema(self, soup: BeautifulSoup) -> bool:
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script.string or "")
            except (json.JSONDecodeError, TypeError):
                continue
            if _declares_article(data):
                return True
        return False


def _declares_article(data: Any) -> bool:
    """Search a JSON-LD payload (object, list or @graph) for an article type."""
    if isinstance(data, list):
        return any(_declares_article(item) for item in data)
    if not isinstance(data, dict):
        return False

    schema_type = data.get("@type")
    types = schema_type if isinstance(schema_type, list) else [schema_type]
    if any(t in JSON_LD_ARTICLE_TYPES for t in types):
        return True

    return _declares_article(data.get("@graph", []))
