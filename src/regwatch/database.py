# src/regwatch/database.py
"""Storage layer for sources, crawl jobs, documents and document versions."""

import json
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from regwatch.config import settings
from regwatch.models import (
    CrawlJob,
    CrawlStats,
    Document,
    DocumentChange,
    DocumentVersion,
    JobStatus,
    Source,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    url TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'news',
    crawler_config TEXT,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS crawl_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES sources(id),
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'running', 'done', 'failed')),
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    pages_crawled INTEGER NOT NULL DEFAULT 0,
    pages_new INTEGER NOT NULL DEFAULT 0,
    pages_failed INTEGER NOT NULL DEFAULT 0,
    pages_skipped INTEGER NOT NULL DEFAULT 0,
    max_depth INTEGER,
    max_pages INTEGER,
    crawl_config TEXT,
    error_message TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES sources(id),
    crawl_job_id INTEGER REFERENCES crawl_jobs(id),
    url TEXT NOT NULL,
    title TEXT,
    content TEXT,
    content_hash TEXT NOT NULL UNIQUE,
    classification TEXT NOT NULL DEFAULT 'unknown',
    is_alert INTEGER NOT NULL DEFAULT 0,
    extracted INTEGER NOT NULL DEFAULT 0,
    crawled_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

-- One row per persisted URL per job, including duplicates of known content
CREATE TABLE IF NOT EXISTS crawl_pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    crawl_job_id INTEGER NOT NULL REFERENCES crawl_jobs(id),
    url TEXT NOT NULL,
    depth INTEGER NOT NULL DEFAULT 0,
    referrer TEXT,
    content_hash TEXT NOT NULL,
    is_duplicate INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP NOT NULL,
    UNIQUE(crawl_job_id, url)
);

CREATE TABLE IF NOT EXISTS document_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES sources(id),
    document_url TEXT NOT NULL,
    document_title TEXT,
    content_type TEXT,
    version_number INTEGER NOT NULL,
    is_current INTEGER NOT NULL DEFAULT 1,
    content_hash TEXT NOT NULL,
    metadata_hash TEXT NOT NULL,
    category TEXT,
    issuing_body TEXT,
    effective_date TEXT,
    published_date TEXT,
    summary TEXT,
    topics TEXT,
    key_numbers TEXT,
    file_path TEXT,
    file_size_bytes INTEGER,
    change_type TEXT,
    changes_detected TEXT,
    full_data TEXT,
    first_seen_at TIMESTAMP NOT NULL,
    last_seen_at TIMESTAMP NOT NULL,
    UNIQUE(source_id, document_url, version_number)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_document_versions_current
    ON document_versions(source_id, document_url) WHERE is_current = 1;

CREATE TABLE IF NOT EXISTS document_changes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES sources(id),
    document_url TEXT NOT NULL,
    old_version_id INTEGER REFERENCES document_versions(id),
    new_version_id INTEGER NOT NULL REFERENCES document_versions(id),
    change_type TEXT NOT NULL,
    change_summary TEXT,
    changes_detected TEXT,
    significance_score REAL NOT NULL DEFAULT 0,
    requires_review INTEGER NOT NULL DEFAULT 0,
    crawl_job_id INTEGER REFERENCES crawl_jobs(id),
    detected_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_document_changes_review
    ON document_changes(requires_review, detected_at);
"""

# Columns of document_versions a caller may set through save_version()
VERSION_COLUMNS = [
    "document_title", "content_type", "content_hash", "metadata_hash",
    "category", "issuing_body", "effective_date", "published_date",
    "summary", "topics", "key_numbers", "file_path", "file_size_bytes",
    "change_type", "changes_detected", "full_data",
]

_JSON_COLUMNS = {"crawler_config", "crawl_config", "topics", "key_numbers", "changes_detected", "full_data"}
_BOOL_COLUMNS = {"is_alert", "extracted", "is_current", "requires_review"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS and value is not None:
        return json.dumps(value)
    return value


def _from_row(cls, row: sqlite3.Row):
    """Build a model dataclass from a row, decoding JSON and boolean columns."""
    names = {f.name for f in fields(cls)}
    data = {}
    for key in row.keys():
        if key not in names:
            continue
        value = row[key]
        if key in _JSON_COLUMNS and value is not None:
            value = json.loads(value)
        elif key in _BOOL_COLUMNS:
            value = bool(value)
        data[key] = value
    if cls is DocumentVersion:
        data["topics"] = data.get("topics") or []
        data["key_numbers"] = data.get("key_numbers") or []
    if cls is CrawlJob:
        data["status"] = JobStatus(data["status"])
    return cls(**data)


class AbstractStore(ABC):
    """Abstract base class defining the storage interface used by the crawler.

    Query methods are coroutines so a store backed by a network database
    can suspend; the SQLite store completes each call without awaiting.
    """

    @abstractmethod
    def connect(self) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def create_schema(self) -> None:
        """Create the necessary database tables."""
        pass

    # Source registry

    @abstractmethod
    async def add_source(
        self,
        name: str,
        url: str,
        source_type: str = "news",
        crawler_config: Optional[Dict[str, Any]] = None,
    ) -> Source:
        """Register a source."""
        pass

    @abstractmethod
    async def get_source(self, source_id: int) -> Optional[Source]:
        """Fetch a source by id."""
        pass

    @abstractmethod
    async def list_sources(self) -> List[Source]:
        """List all registered sources."""
        pass

    @abstractmethod
    async def find_source_by_name(self, name: str) -> Optional[Source]:
        """Fetch a source by its unique name."""
        pass

    # Crawl jobs

    @abstractmethod
    async def create_job(
        self,
        source_id: int,
        max_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
        crawl_config: Optional[Dict[str, Any]] = None,
    ) -> CrawlJob:
        """Create a crawl job in the pending state."""
        pass

    @abstractmethod
    async def get_job(self, job_id: int) -> Optional[CrawlJob]:
        """Fetch a crawl job by id."""
        pass

    @abstractmethod
    async def update_job_status(
        self,
        job_id: int,
        status: JobStatus,
        stats: Optional[CrawlStats] = None,
        error: Optional[str] = None,
    ) -> None:
        """Write a job's status, absolute counters and error message.

        Args:
            job_id: Crawl job id
            status: New status
            stats: Counters to store; left untouched when None
            error: Error message for failed jobs
        """
        pass

    # Documents

    @abstractmethod
    async def find_by_fingerprint(self, content_hash: str) -> Optional[Document]:
        """Look up a document by content fingerprint."""
        pass

    @abstractmethod
    async def insert_document(
        self,
        source_id: int,
        crawl_job_id: Optional[int],
        url: str,
        title: str,
        content: str,
        content_hash: str,
    ) -> bool:
        """Insert a document unless its fingerprint already exists.

        Returns:
            True if a row was written, False on fingerprint conflict
        """
        pass

    @abstractmethod
    async def record_crawl_page(
        self,
        crawl_job_id: int,
        url: str,
        content_hash: str,
        is_duplicate: bool,
        depth: int = 0,
        referrer: Optional[str] = None,
    ) -> None:
        """Record that a job persisted (or matched) a URL."""
        pass

    @abstractmethod
    async def list_documents(self, source_id: Optional[int] = None) -> List[Document]:
        """List documents, optionally for one source."""
        pass

    @abstractmethod
    async def list_crawl_pages(self, crawl_job_id: int) -> List[Dict[str, Any]]:
        """List the URL associations recorded for a job."""
        pass

    # Document versions

    @abstractmethod
    async def get_current_version(self, source_id: int, document_url: str) -> Optional[DocumentVersion]:
        """Fetch the current version of a logical document."""
        pass

    @abstractmethod
    async def save_version(self, source_id: int, document_url: str, values: Dict[str, Any]) -> int:
        """Atomically retire the current version and insert the next one.

        Returns:
            Id of the new current version
        """
        pass

    @abstractmethod
    async def record_change(
        self,
        source_id: int,
        document_url: str,
        new_version_id: int,
        change_type: str,
        significance_score: float,
        requires_review: bool,
        old_version_id: Optional[int] = None,
        change_summary: Optional[str] = None,
        changes_detected: Optional[Dict[str, Any]] = None,
        crawl_job_id: Optional[int] = None,
    ) -> int:
        """Insert a change audit record and return its id."""
        pass

    @abstractmethod
    async def get_version_history(self, source_id: int, document_url: str) -> List[DocumentVersion]:
        """All versions of a document, newest first."""
        pass

    @abstractmethod
    async def get_recent_changes(self, source_id: Optional[int] = None, limit: int = 50) -> List[DocumentChange]:
        """Most recent change records, newest first."""
        pass

    @abstractmethod
    async def get_changes_for_review(self, limit: int = 50) -> List[DocumentChange]:
        """Change records flagged for review, most significant first."""
        pass


class SqliteStore(AbstractStore):
    """SQLite implementation of the store."""

    def __init__(self, db_url: Optional[str] = None):
        """Initialize local SQLite database.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db or sqlite:///:memory:).
                Defaults to settings.DATABASE_URL.
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.conn: Optional[sqlite3.Connection] = None
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to local SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed local SQLite connection")

    def create_schema(self) -> None:
        """Create all tables and indexes if they don't exist."""
        with self.conn:
            self.conn.executescript(SCHEMA_SQL)
        logger.debug("Schema verified/created for local SQLite")

    async def add_source(
        self,
        name: str,
        url: str,
        source_type: str = "news",
        crawler_config: Optional[Dict[str, Any]] = None,
    ) -> Source:
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO sources (name, url, type, crawler_config, created_at) VALUES (?, ?, ?, ?, ?)",
                (name, url, source_type, _to_db("crawler_config", crawler_config), _now()),
            )
        logger.debug(f"Added source {cursor.lastrowid}: {name}")
        return await self.get_source(cursor.lastrowid)

    async def get_source(self, source_id: int) -> Optional[Source]:
        row = self.conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _from_row(Source, row) if row else None

    async def list_sources(self) -> List[Source]:
        rows = self.conn.execute("SELECT * FROM sources ORDER BY id").fetchall()
        return [_from_row(Source, row) for row in rows]

    async def find_source_by_name(self, name: str) -> Optional[Source]:
        row = self.conn.execute("SELECT * FROM sources WHERE name = ?", (name,)).fetchone()
        return _from_row(Source, row) if row else None

    async def create_job(
        self,
        source_id: int,
        max_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
        crawl_config: Optional[Dict[str, Any]] = None,
    ) -> CrawlJob:
        now = _now()
        with self.conn:
            cursor = self.conn.execute(
                """INSERT INTO crawl_jobs (source_id, status, max_depth, max_pages, crawl_config, created_at, updated_at)
                   VALUES (?, 'pending', ?, ?, ?, ?, ?)""",
                (source_id, max_depth, max_pages, _to_db("crawl_config", crawl_config), now, now),
            )
        return await self.get_job(cursor.lastrowid)

    async def get_job(self, job_id: int) -> Optional[CrawlJob]:
        row = self.conn.execute("SELECT * FROM crawl_jobs WHERE id = ?", (job_id,)).fetchone()
        return _from_row(CrawlJob, row) if row else None

    async def update_job_status(
        self,
        job_id: int,
        status: JobStatus,
        stats: Optional[CrawlStats] = None,
        error: Optional[str] = None,
    ) -> None:
        status = JobStatus(status)
        now = _now()
        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [status.value, now]

        if status == JobStatus.RUNNING:
            assignments.append("started_at = COALESCE(started_at, ?)")
            params.append(now)
        elif status.is_terminal:
            assignments.append("completed_at = ?")
            params.append(now)

        if stats is not None:
            for column, value in stats.to_dict().items():
                assignments.append(f"{column} = ?")
                params.append(value)

        if error is not None:
            assignments.append("error_message = ?")
            params.append(error)

        params.append(job_id)
        with self.conn:
            self.conn.execute(
                f"UPDATE crawl_jobs SET {', '.join(assignments)} WHERE id = ?",
                tuple(params),
            )
        logger.debug(f"Job {job_id} -> {status.value}")

    async def find_by_fingerprint(self, content_hash: str) -> Optional[Document]:
        row = self.conn.execute(
            "SELECT * FROM documents WHERE content_hash = ?", (content_hash,)
        ).fetchone()
        return _from_row(Document, row) if row else None

    async def insert_document(
        self,
        source_id: int,
        crawl_job_id: Optional[int],
        url: str,
        title: str,
        content: str,
        content_hash: str,
    ) -> bool:
        now = _now()
        with self.conn:
            # is_alert is read from the owning source at insert time
            cursor = self.conn.execute(
                """INSERT INTO documents (
                       source_id, crawl_job_id, url, title, content, content_hash,
                       classification, is_alert, extracted, crawled_at, created_at, updated_at
                   ) VALUES (
                       ?, ?, ?, ?, ?, ?, 'unknown',
                       COALESCE((SELECT type = 'policy' FROM sources WHERE id = ?), 0),
                       0, ?, ?, ?
                   )
                   ON CONFLICT(content_hash) DO NOTHING""",
                (source_id, crawl_job_id, url, title, content, content_hash, source_id, now, now, now),
            )
        return cursor.rowcount == 1

    async def record_crawl_page(
        self,
        crawl_job_id: int,
        url: str,
        content_hash: str,
        is_duplicate: bool,
        depth: int = 0,
        referrer: Optional[str] = None,
    ) -> None:
        with self.conn:
            self.conn.execute(
                """INSERT INTO crawl_pages (crawl_job_id, url, depth, referrer, content_hash, is_duplicate, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(crawl_job_id, url) DO NOTHING""",
                (crawl_job_id, url, depth, referrer, content_hash, int(is_duplicate), _now()),
            )

    async def list_documents(self, source_id: Optional[int] = None) -> List[Document]:
        if source_id is None:
            rows = self.conn.execute("SELECT * FROM documents ORDER BY id").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM documents WHERE source_id = ? ORDER BY id", (source_id,)
            ).fetchall()
        return [_from_row(Document, row) for row in rows]

    async def list_crawl_pages(self, crawl_job_id: int) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM crawl_pages WHERE crawl_job_id = ? ORDER BY id", (crawl_job_id,)
        ).fetchall()
        return [dict(row) for row in rows]

    async def get_current_version(self, source_id: int, document_url: str) -> Optional[DocumentVersion]:
        row = self.conn.execute(
            """SELECT * FROM document_versions
               WHERE source_id = ? AND document_url = ? AND is_current = 1""",
            (source_id, document_url),
        ).fetchone()
        return _from_row(DocumentVersion, row) if row else None

    async def save_version(self, source_id: int, document_url: str, values: Dict[str, Any]) -> int:
        unknown = set(values) - set(VERSION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown version columns: {sorted(unknown)}")

        now = _now()
        with self.conn:
            self.conn.execute(
                """UPDATE document_versions SET is_current = 0, last_seen_at = ?
                   WHERE source_id = ? AND document_url = ? AND is_current = 1""",
                (now, source_id, document_url),
            )
            row = self.conn.execute(
                """SELECT COALESCE(MAX(version_number), 0) + 1 AS next_version FROM document_versions
                   WHERE source_id = ? AND document_url = ?""",
                (source_id, document_url),
            ).fetchone()

            columns = ["source_id", "document_url", "version_number", "is_current",
                       "first_seen_at", "last_seen_at"] + list(values)
            params = [source_id, document_url, row["next_version"], 1, now, now]
            params += [_to_db(column, value) for column, value in values.items()]
            cursor = self.conn.execute(
                f"INSERT INTO document_versions ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                tuple(params),
            )

        logger.debug(f"Saved version {row['next_version']} of {document_url}")
        return cursor.lastrowid

    async def record_change(
        self,
        source_id: int,
        document_url: str,
        new_version_id: int,
        change_type: str,
        significance_score: float,
        requires_review: bool,
        old_version_id: Optional[int] = None,
        change_summary: Optional[str] = None,
        changes_detected: Optional[Dict[str, Any]] = None,
        crawl_job_id: Optional[int] = None,
    ) -> int:
        with self.conn:
            cursor = self.conn.execute(
                """INSERT INTO document_changes (
                       source_id, document_url, old_version_id, new_version_id, change_type,
                       change_summary, changes_detected, significance_score, requires_review,
                       crawl_job_id, detected_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    source_id, document_url, old_version_id, new_version_id, change_type,
                    change_summary, _to_db("changes_detected", changes_detected),
                    significance_score, int(requires_review), crawl_job_id, _now(),
                ),
            )
        return cursor.lastrowid

    async def get_version_history(self, source_id: int, document_url: str) -> List[DocumentVersion]:
        rows = self.conn.execute(
            """SELECT * FROM document_versions WHERE source_id = ? AND document_url = ?
               ORDER BY version_number DESC""",
            (source_id, document_url),
        ).fetchall()
        return [_from_row(DocumentVersion, row) for row in rows]

    async def get_recent_changes(self, source_id: Optional[int] = None, limit: int = 50) -> List[DocumentChange]:
        if source_id is None:
            rows = self.conn.execute(
                "SELECT * FROM document_changes ORDER BY detected_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                """SELECT * FROM document_changes WHERE source_id = ?
                   ORDER BY detected_at DESC, id DESC LIMIT ?""",
                (source_id, limit),
            ).fetchall()
        return [_from_row(DocumentChange, row) for row in rows]

    async def get_changes_for_review(self, limit: int = 50) -> List[DocumentChange]:
        rows = self.conn.execute(
            """SELECT * FROM document_changes WHERE requires_review = 1
               ORDER BY significance_score DESC, detected_at DESC LIMIT ?""",
            (limit,),
        ).fetchall()
        return [_from_row(DocumentChange, row) for row in rows]


def get_store(
    backend: Optional[str] = None,
    **kwargs,
) -> AbstractStore:
    """Factory function to create the configured store.

    Args:
        backend: Storage backend name. Defaults to settings.DB_BACKEND.
        **kwargs: Additional arguments passed to the store constructor.

    Returns:
        An AbstractStore instance

    Raises:
        ValueError: If an unknown backend is specified.
    """
    backend = backend or settings.DB_BACKEND

    if backend == "local":
        logger.info("Using local SQLite database backend")
        return SqliteStore(**kwargs)
    raise ValueError(
        f"Unknown database backend: '{backend}'. "
        "Supported backends: 'local'"
    )
