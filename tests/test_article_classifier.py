"""Tests for ArticleClassifier."""

import json

import pytest
from bs4 import BeautifulSoup

from regwatch.article_classifier import ArticleClassifier

BODY = "Grid operators reported a supply margin below the required reserve level. " * 10

ARTICLE_URL = "https://example.com/news/2024/grid-alert"


def soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def two_indicator_page(extra_head: str = "") -> str:
    """Page matching exactly two indicators (<time> and .byline), no content bonus."""
    return f"""
    <html><head><title>Grid alert</title>{extra_head}</head>
    <body>
      <span class="byline">By Staff</span>
      <time datetime="2024-05-01">May 1</time>
      <div class="text"><p>{BODY}</p></div>
    </body></html>
    """


JSON_LD_ARTICLE = (
    '<script type="application/ld+json">'
    + json.dumps({"@context": "https://schema.org", "@type": "Article", "headline": "Grid alert"})
    + "</script>"
)


class TestArticleClassifier:
    """Test cases for ArticleClassifier."""

    def test_disabled_accepts_everything(self):
        classifier = ArticleClassifier(enabled=False)
        assert classifier.is_article("https://example.com/", soup("<html></html>")) is True

    def test_score_two_is_not_article(self):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page())

        assert classifier.score(page) == 2
        assert classifier.is_article(ARTICLE_URL, page) is False

    def test_json_ld_article_pushes_over_threshold(self):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page(JSON_LD_ARTICLE))

        assert classifier.score(page) == 5
        assert classifier.is_article(ARTICLE_URL, page) is True

    def test_og_article_adds_two(self):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page('<meta property="og:type" content="article">'))

        assert classifier.score(page) == 4
        assert classifier.is_article(ARTICLE_URL, page) is True

    def test_json_ld_in_graph(self):
        graph = json.dumps({"@graph": [{"@type": "WebPage"}, {"@type": ["NewsArticle"]}]})
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page(f'<script type="application/ld+json">{graph}</script>'))

        assert classifier.score(page) == 5

    def test_invalid_json_ld_ignored(self):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page('<script type="application/ld+json">{not json</script>'))

        assert classifier.score(page) == 2

    def test_content_bonus_for_long_article_element(self):
        html = f"<html><body><article><p>{BODY}</p></article></body></html>"
        classifier = ArticleClassifier(enabled=True)

        assert classifier.score(soup(html)) == 3
        assert classifier.is_article(ARTICLE_URL, soup(html)) is True

    @pytest.mark.parametrize("url", [
        "https://example.com/category/energy",
        "https://example.com/news/tag/solar",
        "https://example.com/news/author/jdoe",
        "https://example.com/news/page/3",
        "https://example.com/news/archives/2023",
        "https://example.com/news/2023-archives",
        "https://example.com/news/index.html",
    ])
    def test_category_urls_rejected(self, url):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page(JSON_LD_ARTICLE))

        assert classifier.is_article(url, page) is False

    def test_source_blocked_pattern_rejected(self):
        classifier = ArticleClassifier(enabled=True, blocked_path_patterns=["/markets/"])
        page = soup(two_indicator_page(JSON_LD_ARTICLE))

        assert classifier.is_article("https://example.com/markets/stock-quotes", page) is False

    def test_single_segment_path_rejected(self):
        classifier = ArticleClassifier(enabled=True)
        page = soup(two_indicator_page(JSON_LD_ARTICLE))

        assert classifier.is_article("https://example.com/economy", page) is False
        assert classifier.is_article("https://example.com/", page) is False

    def test_short_body_rejected(self):
        html = f"<html><head>{JSON_LD_ARTICLE}</head><body><article><time>May 1</time>Short.</article></body></html>"
        classifier = ArticleClassifier(enabled=True)

        assert classifier.is_article(ARTICLE_URL, soup(html)) is False

    def test_custom_indicators_replace_defaults(self):
        html = f'<html><body><div class="story-body"><p>{BODY}</p></div><time>May 1</time></body></html>'
        classifier = ArticleClassifier(enabled=True, article_indicators=[".story-body", ".dateline"])

        # .story-body matched; <time> is not a custom indicator
        assert classifier.score(soup(html)) == 1
