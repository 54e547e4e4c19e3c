"""Data models for crawl jobs, documents and document versions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    """Lifecycle of a crawl job: pending -> running -> done | failed."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


class PageOutcome(Enum):
    """Result of running one frontier entry through the page pipeline."""

    NEW = "new"
    DUPLICATE = "duplicate"
    LISTING = "listing"  # fetched, links harvested, not persisted
    SKIPPED = "skipped"  # already visited or denied by robots.txt
    FAILED = "failed"
    CAP_REACHED = "cap_reached"  # not fetched, page budget spent


class ChangeType(str, Enum):
    """Change tags written to document_versions and document_changes."""

    NEW = "new"
    CONTENT_UPDATED = "content_updated"
    TITLE_CHANGED = "title_changed"
    DATE_CHANGED = "date_changed"
    METADATA_UPDATED = "metadata_updated"
    NO_CHANGE = "no_change"


@dataclass
class Source:
    """A crawlable website registered in the source registry."""

    id: Optional[int]
    name: str
    url: str
    type: str = "news"  # 'policy' sources produce alert documents
    crawler_config: Optional[dict] = None
    created_at: Optional[str] = None

    @property
    def is_policy(self) -> bool:
        return self.type == "policy"


@dataclass
class CrawlJob:
    """One bounded crawl execution for a source."""

    id: int
    source_id: int
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    pages_crawled: int = 0
    pages_new: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    max_depth: Optional[int] = None
    max_pages: Optional[int] = None
    crawl_config: Optional[dict] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class CrawlStats:
    """Counters aggregated over one crawl job."""

    pages_crawled: int = 0  # successful fetches
    pages_new: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "pages_crawled": self.pages_crawled,
            "pages_new": self.pages_new,
            "pages_failed": self.pages_failed,
            "pages_skipped": self.pages_skipped,
        }


@dataclass(frozen=True)
class FrontierEntry:
    """A discovered URL waiting to be fetched."""

    url: str
    depth: int
    referrer: Optional[str] = None


@dataclass(frozen=True)
class PageResult:
    """Outcome of one frontier entry plus whether its fetch succeeded."""

    outcome: PageOutcome
    fetched: bool = False


@dataclass
class FetchResponse:
    """Raw response returned by a fetch strategy."""

    url: str
    final_url: str
    html: str
    status_code: int = 200


@dataclass
class FetchedPage:
    """Extracted view of a fetched page, consumed immediately by the crawler."""

    url: str
    final_url: str
    title: str
    content: str
    content_hash: str
    links: list[str] = field(default_factory=list)


@dataclass
class Document:
    """A persisted, deduplicated crawl result."""

    id: Optional[int]
    source_id: int
    crawl_job_id: Optional[int]
    url: str
    title: str
    content: str
    content_hash: str
    classification: str = "unknown"
    is_alert: bool = False
    extracted: bool = False
    crawled_at: Optional[str] = None


@dataclass
class DocumentVersion:
    """Point-in-time snapshot of a logical document (source + url)."""

    id: int
    source_id: int
    document_url: str
    version_number: int
    is_current: bool
    content_hash: str
    metadata_hash: str
    document_title: Optional[str] = None
    content_type: Optional[str] = None
    category: Optional[str] = None
    issuing_body: Optional[str] = None
    effective_date: Optional[str] = None
    published_date: Optional[str] = None
    summary: Optional[str] = None
    topics: list[str] = field(default_factory=list)
    key_numbers: list[Any] = field(default_factory=list)
    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    change_type: Optional[str] = None
    changes_detected: Optional[dict] = None
    full_data: Optional[dict] = None
    first_seen_at: Optional[str] = None
    last_seen_at: Optional[str] = None


@dataclass
class DocumentChange:
    """Audit record for a new or changed document version."""

    id: int
    source_id: int
    document_url: str
    new_version_id: int
    change_type: str
    significance_score: float
    requires_review: bool
    old_version_id: Optional[int] = None
    change_summary: Optional[str] = None
    changes_detected: Optional[dict] = None
    crawl_job_id: Optional[int] = None
    detected_at: Optional[str] = None


@dataclass
class ChangeDetectionResult:
    """Outcome of comparing a document against its current stored version."""

    is_new: bool
    has_changed: bool
    change_type: ChangeType
    changes: dict = field(default_factory=dict)  # field -> {"old": ..., "new": ...}
    previous_version: Optional[DocumentVersion] = None
    significance_score: float = 0.0


@dataclass
class ProcessResult:
    """Versions written (if any) by DocumentChangeDetector.process_document."""

    detection: ChangeDetectionResult
    version_id: Optional[int] = None
    change_id: Optional[int] = None

    @property
    def written(self) -> bool:
        return self.change_id is not None
