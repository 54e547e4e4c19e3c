"""Polite multi-page crawler for regulatory and news sources."""

__version__ = "0.1.0"

from regwatch.robots import RobotsPolicyCache
from regwatch.fetch import FetchStrategy, DirectFetch, BrowserFetch, FetchError
from regwatch.extractor import ContentExtractor
from regwatch.article_classifier import ArticleClassifier
from regwatch.links import LinkFilter, normalize_url
from regwatch.multi_page_crawler import (
    MultiPageCrawler,
    create_multi_page_crawler,
    run_crawl_job,
)
from regwatch.change_detector import DocumentChangeDetector
from regwatch.database import AbstractStore, SqliteStore, get_store
from regwatch.models import (
    JobStatus,
    PageOutcome,
    ChangeType,
    Source,
    CrawlJob,
    CrawlStats,
    FrontierEntry,
    FetchedPage,
    Document,
    DocumentVersion,
    DocumentChange,
    ChangeDetectionResult,
)
from regwatch.config import settings, CrawlSettings, CrawlConfigError

__all__ = [
    "RobotsPolicyCache",
    "FetchStrategy",
    "DirectFetch",
    "BrowserFetch",
    "FetchError",
    "ContentExtractor",
    "ArticleClassifier",
    "LinkFilter",
    "normalize_url",
    "MultiPageCrawler",
    "create_multi_page_crawler",
    "run_crawl_job",
    "DocumentChangeDetector",
    "AbstractStore",
    "SqliteStore",
    "get_store",
    "JobStatus",
    "PageOutcome",
    "ChangeType",
    "Source",
    "CrawlJob",
    "CrawlStats",
    "FrontierEntry",
    "FetchedPage",
    "Document",
    "DocumentVersion",
    "DocumentChange",
    "ChangeDetectionResult",
    "settings",
    "CrawlSettings",
    "CrawlConfigError",
]
