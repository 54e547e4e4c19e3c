from dotenv import load_dotenv
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
import os
import re

from regwatch.constants import (
    DEFAULT_BLOCKED_PATH_PATTERNS,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_POLITENESS_DELAY_SECONDS,
    DESKTOP_USER_AGENT,
    ROBOTS_USER_AGENT,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    DATABASE_URL = os.getenv("REGWATCH_DATABASE_URL", "sqlite:///regwatch.db")
    DB_BACKEND = os.getenv("REGWATCH_DB_BACKEND", "local")
    USER_AGENT = os.getenv("REGWATCH_USER_AGENT", DESKTOP_USER_AGENT)
    ROBOTS_USER_AGENT = os.getenv("REGWATCH_ROBOTS_USER_AGENT", ROBOTS_USER_AGENT)
    HEADLESS = os.getenv("REGWATCH_HEADLESS", "true").lower() != "false"
    POLITENESS_DELAY = float(os.getenv("REGWATCH_POLITENESS_DELAY", str(DEFAULT_POLITENESS_DELAY_SECONDS)))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


class CrawlConfigError(ValueError):
    """Raised when a crawl configuration cannot be used to start a job."""


# Stored source configs use the camelCase keys of the web dashboard
_CAMEL_CASE_KEYS = {
    "maxDepth": "max_depth",
    "maxPages": "max_pages",
    "allowedPathPatterns": "allowed_path_patterns",
    "blockedPathPatterns": "blocked_path_patterns",
    "followExternalLinks": "follow_external_links",
    "skipCategoryPages": "skip_category_pages",
    "articleIndicators": "article_indicators",
    "trackChanges": "track_changes",
    "politenessDelay": "politeness_delay",
}


@dataclass
class CrawlSettings:
    """Per-job crawl options after merging overrides, source config and defaults."""

    base_url: str = ""
    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = DEFAULT_CONCURRENCY
    allowed_path_patterns: List[str] = field(default_factory=list)
    blocked_path_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_PATH_PATTERNS))
    follow_external_links: bool = False

    # Article/listing discrimination
    skip_category_pages: bool = False
    article_indicators: Optional[List[str]] = None

    # Opt-in version tracking through DocumentChangeDetector
    track_changes: bool = False
    politeness_delay: float = settings.POLITENESS_DELAY

    @classmethod
    def resolve(
        cls,
        base_url: str,
        source_config: Optional[Dict[str, Any]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "CrawlSettings":
        """Merge the three configuration tiers and validate the result.

        Call-time overrides win over the source's stored crawler config,
        which wins over the defaults (the politeness delay default comes
        from REGWATCH_POLITENESS_DELAY). Keys may be snake_case or camelCase;
        unknown keys are ignored.

        Args:
            base_url: Start URL of the crawl
            source_config: Stored per-source crawler config
            overrides: Explicit call-time overrides

        Returns:
            Validated CrawlSettings

        Raises:
            CrawlConfigError: If the base URL, a limit or a pattern is invalid
        """
        values: Dict[str, Any] = {}
        for tier in (source_config, overrides):
            values.update(_normalize_keys(tier or {}))

        values["base_url"] = base_url
        crawl_settings = cls(**values)
        crawl_settings.validate()
        return crawl_settings

    def validate(self) -> None:
        """Check limits, the base URL and every regex pattern.

        Raises:
            CrawlConfigError: On the first invalid value
        """
        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise CrawlConfigError(f"Invalid base URL: {self.base_url!r}")

        for name, minimum in (("max_depth", 0), ("max_pages", 1), ("concurrency", 1)):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise CrawlConfigError(f"{name} must be an integer >= {minimum}, got {value!r}")

        if self.politeness_delay < 0:
            raise CrawlConfigError(f"politeness_delay must be >= 0, got {self.politeness_delay!r}")

        for pattern in list(self.allowed_path_patterns) + list(self.blocked_path_patterns):
            try:
                re.compile(pattern)
            except re.error as e:
                raise CrawlConfigError(f"Invalid path pattern {pattern!r}: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, as stored on the crawl job row."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _normalize_keys(config: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase keys to field names and drop unknown or null entries."""
    known = {f.name for f in fields(CrawlSettings)} - {"base_url"}
    normalized = {}
    for key, value in config.items():
        name = _CAMEL_CASE_KEYS.get(key, key)
        if name in known and value is not None:
            normalized[name] = value
    return normalized
