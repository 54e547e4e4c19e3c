"""Tests for crawl configuration merging and validation."""

import pytest

from regwatch.config import CrawlConfigError, CrawlSettings, settings as env_settings
from regwatch.constants import (
    DEFAULT_BLOCKED_PATH_PATTERNS,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
)

BASE = "https://example.com/news"


class TestCrawlSettings:
    """Test cases for CrawlSettings.resolve."""

    def test_defaults(self):
        settings = CrawlSettings.resolve(BASE)

        assert settings.base_url == BASE
        assert settings.max_depth == DEFAULT_MAX_DEPTH
        assert settings.max_pages == DEFAULT_MAX_PAGES
        assert settings.concurrency == DEFAULT_CONCURRENCY
        assert settings.blocked_path_patterns == DEFAULT_BLOCKED_PATH_PATTERNS
        assert settings.allowed_path_patterns == []
        assert settings.skip_category_pages is False
        assert settings.track_changes is False

    def test_default_patterns_not_shared(self):
        first = CrawlSettings.resolve(BASE)
        first.blocked_path_patterns.append("/mutated/")

        assert "/mutated/" not in CrawlSettings.resolve(BASE).blocked_path_patterns
        assert "/mutated/" not in DEFAULT_BLOCKED_PATH_PATTERNS

    def test_override_wins_over_source_config(self):
        settings = CrawlSettings.resolve(
            BASE,
            source_config={"max_depth": 4, "max_pages": 80},
            overrides={"max_depth": 1},
        )

        assert settings.max_depth == 1
        assert settings.max_pages == 80

    def test_camel_case_source_config(self):
        settings = CrawlSettings.resolve(
            BASE,
            source_config={
                "maxDepth": 3,
                "skipCategoryPages": True,
                "allowedPathPatterns": [r"/news/"],
                "articleIndicators": [".story"],
            },
        )

        assert settings.max_depth == 3
        assert settings.skip_category_pages is True
        assert settings.allowed_path_patterns == [r"/news/"]
        assert settings.article_indicators == [".story"]

    def test_unknown_and_null_keys_ignored(self):
        settings = CrawlSettings.resolve(
            BASE,
            source_config={"selector": "main", "max_pages": None},
            overrides={"base_url": "https://evil.example/"},
        )

        assert settings.max_pages == DEFAULT_MAX_PAGES
        assert settings.base_url == BASE

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/", "https://", "/news"])
    def test_invalid_base_url(self, url):
        with pytest.raises(CrawlConfigError):
            CrawlSettings.resolve(url)

    @pytest.mark.parametrize("overrides", [
        {"max_depth": -1},
        {"max_pages": 0},
        {"concurrency": 0},
        {"concurrency": True},
        {"max_pages": "10"},
        {"politeness_delay": -0.5},
    ])
    def test_invalid_limits(self, overrides):
        with pytest.raises(CrawlConfigError):
            CrawlSettings.resolve(BASE, overrides=overrides)

    def test_zero_depth_allowed(self):
        assert CrawlSettings.resolve(BASE, overrides={"max_depth": 0}).max_depth == 0

    def test_invalid_regex(self):
        with pytest.raises(CrawlConfigError, match="Invalid path pattern"):
            CrawlSettings.resolve(BASE, source_config={"blockedPathPatterns": ["/news/(unclosed"]})

    def test_config_error_is_value_error(self):
        assert issubclass(CrawlConfigError, ValueError)

    def test_to_dict(self):
        data = CrawlSettings.resolve(BASE, overrides={"max_pages": 5}).to_dict()

        assert data["base_url"] == BASE
        assert data["max_pages"] == 5
        assert "track_changes" in data

    def test_source_delay_kept_without_override(self):
        crawl_settings = CrawlSettings.resolve(BASE, source_config={"politenessDelay": 4.0}, overrides={})
        assert crawl_settings.politeness_delay == 4.0

    def test_delay_defaults_to_environment_setting(self):
        assert CrawlSettings.resolve(BASE).politeness_delay == env_settings.POLITENESS_DELAY
