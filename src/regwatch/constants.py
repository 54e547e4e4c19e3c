# src/regwatch/constants.py
"""Centralized constants for the regwatch crawler.

This module contains the numeric limits, timeouts and heuristic weight
tables shared across modules. Per-source crawl options live in
config.CrawlSettings.
"""

# =============================================================================
# Crawl Limits
# =============================================================================

DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 50
DEFAULT_CONCURRENCY = 3

# Pause after every frontier entry, per worker
DEFAULT_POLITENESS_DELAY_SECONDS = 1.0

DEFAULT_BLOCKED_PATH_PATTERNS = [
    r"/wp-admin/",
    r"/wp-content/uploads/",
    r"/wp-includes/",
    r"/feed/",
    r"/rss/",
    r"/print/",
    r"/share/",
    r"\.pdf$",
    r"\.xlsx?$",
    r"\.docx?$",
    r"\.pptx?$",
    r"\.zip$",
    r"\.rar$",
    r"\.jpe?g$",
    r"\.png$",
    r"\.gif$",
    r"\.mp4$",
    r"\.mp3$",
]

# =============================================================================
# HTTP / Browser
# =============================================================================

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
PREFLIGHT_TIMEOUT_SECONDS = 10.0
MAX_REDIRECTS = 5

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

# Token matched against robots.txt User-agent groups
ROBOTS_USER_AGENT = "RegwatchBot"

BROWSER_NAVIGATION_TIMEOUT_MS = 60000
BROWSER_SETTLE_WAIT_MS = 8000
BROWSER_CHALLENGE_WAIT_MS = 15000

# =============================================================================
# robots.txt
# =============================================================================

ROBOTS_CACHE_TTL_SECONDS = 3600
ROBOTS_FETCH_TIMEOUT_SECONDS = 5.0

# =============================================================================
# Content Extraction
# =============================================================================

CONTENT_SELECTORS = [
    '[id*="content"]',
    '[class*="content"]',
    "article",
    "main",
    ".post-content",
    ".entry-content",
    ".page-content",
    '[role="main"]',
    ".ms-rtestate-field",  # SharePoint rich text
    "#contentBox",
    "body",
]

NOISE_SELECTORS = "script, style, noscript, nav, header, footer, .navigation, .menu, #sidebar"

FALLBACK_TEXT_SELECTORS = "p, li, td, h1, h2, h3, h4, h5, h6"

MIN_CONTAINER_TEXT_LENGTH = 200
MIN_FALLBACK_ELEMENT_LENGTH = 20
MIN_CONTENT_LENGTH = 50
MAX_CONTENT_LENGTH = 50000
TRUNCATION_MARKER = "\n...[truncated]"
MINIMAL_CONTENT_PREFIX = "[Minimal content]"
UNTITLED = "Untitled"

# =============================================================================
# Article Classification
# =============================================================================

CATEGORY_PATH_PATTERNS = [
    r"/category/",
    r"/tag/",
    r"/author/",
    r"/page/",
    r"/archives/",
    r"-archives",
    r"/index",
]

DEFAULT_ARTICLE_INDICATORS = [
    "article",
    '[class*="post"]',
    ".entry-content",
    ".post-content",
    ".article-content",
    '[class*="author"]',
    ".byline",
    "time",
    '[class*="date"]',
    '[class*="published"]',
]

JSON_LD_ARTICLE_TYPES = {"Article", "NewsArticle", "BlogPosting", "ReportageNewsArticle"}

MIN_ARTICLE_PATH_SEGMENTS = 2
MIN_ARTICLE_BODY_LENGTH = 500
MIN_INDICATOR_CONTENT_LENGTH = 200

# Each matched selector is a weak signal; schema markup is a strong one.
ARTICLE_SCORE_WEIGHTS = {
    "indicator": 1,
    "content_bonus": 2,
    "json_ld_article": 3,
    "og_article": 2,
}
ARTICLE_SCORE_THRESHOLD = 3

# =============================================================================
# Change Detection
# =============================================================================

# Content and title edits change what a document says; date edits change
# when it applies. Cosmetic metadata weighs least.
SIGNIFICANCE_WEIGHTS = {
    "content": 0.4,
    "title": 0.3,
    "dates": 0.2,  # effective_date or published_date, counted once
    "issuing_body": 0.15,
    "category": 0.1,
    "summary": 0.2,
}
MAX_SIGNIFICANCE = 1.0
REVIEW_THRESHOLD = 0.7

METADATA_HASH_FIELDS = ["title", "issuing_body", "effective_date", "published_date", "category"]

# Metadata fields diffed individually when the metadata hash changes
METADATA_DIFF_FIELDS = ["issuing_body", "effective_date", "published_date", "category"]

DEFAULT_CONTENT_TYPE = "html"
