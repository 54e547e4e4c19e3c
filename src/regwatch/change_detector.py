"""Document version tracking and change detection."""

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from regwatch.constants import (
    DEFAULT_CONTENT_TYPE,
    MAX_SIGNIFICANCE,
    METADATA_DIFF_FIELDS,
    REVIEW_THRESHOLD,
    SIGNIFICANCE_WEIGHTS,
)
from regwatch.database import AbstractStore
from regwatch.models import (
    ChangeDetectionResult,
    ChangeType,
    DocumentChange,
    DocumentVersion,
    ProcessResult,
)

logger = logging.getLogger(__name__)

# Change-map keys that share one significance weight
_WEIGHT_KEYS = {
    "effective_date": "dates",
    "published_date": "dates",
}


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lower(value: Any) -> Optional[str]:
    text = _clean(value)
    return text.lower() if text else None


def normalize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Map the accepted input aliases onto version field names.

    Args:
        document: Document fields from the crawler or an extraction step

    Returns:
        Dictionary keyed by document_versions column names
    """
    return {
        "document_url": document.get("source_url") or document.get("url") or document.get("document_url"),
        "title": _clean(document.get("title") or document.get("document_title")),
        "content_type": document.get("content_type") or DEFAULT_CONTENT_TYPE,
        "category": _clean(document.get("category") or document.get("type")),
        "issuing_body": _clean(document.get("issuing_body")),
        "effective_date": _clean(document.get("effective_date") or document.get("date_effective")),
        "published_date": _clean(document.get("published_date") or document.get("date_published")),
        "summary": _clean(document.get("summary")),
        "topics": list(document.get("topics") or []),
        "key_numbers": list(document.get("key_numbers") or []),
        "file_path": document.get("file_path"),
        "file_size_bytes": document.get("file_size_bytes") or document.get("file_size"),
    }


class DocumentChangeDetector:
    """Tracks versions of logical documents (source + url) and records changes."""

    def __init__(self, store: AbstractStore):
        self.store = store

    def generate_content_hash(self, document: Dict[str, Any]) -> str:
        """Hash summary, topics and key numbers as a proxy for document content."""
        doc = normalize_document(document)
        parts = [
            _lower(doc["summary"]),
            json.dumps(doc["topics"], sort_keys=True),
            json.dumps(doc["key_numbers"], sort_keys=True),
        ]
        return _sha256("|".join(p for p in parts if p))

    def hash_metadata(self, document: Dict[str, Any]) -> str:
        """Hash title, issuing body, dates and category."""
        doc = normalize_document(document)
        parts = [
            _lower(doc["title"]),
            _lower(doc["issuing_body"]),
            _clean(doc["effective_date"]),
            _clean(doc["published_date"]),
            _lower(doc["category"]),
        ]
        return _sha256("|".join(p for p in parts if p))

    async def detect_change(
        self,
        source_id: int,
        document_url: str,
        document: Dict[str, Any],
    ) -> ChangeDetectionResult:
        """Compare a document against its current stored version.

        Args:
            source_id: Owning source
            document_url: URL identifying the logical document
            document: New document fields

        Returns:
            ChangeDetectionResult describing what changed
        """
        previous = await self.store.get_current_version(source_id, document_url)
        if previous is None:
            return ChangeDetectionResult(is_new=True, has_changed=False, change_type=ChangeType.NEW)

        content_hash = self.generate_content_hash(document)
        metadata_hash = self.hash_metadata(document)

        content_changed = previous.content_hash != content_hash
        metadata_changed = previous.metadata_hash != metadata_hash

        if not content_changed and not metadata_changed:
            return ChangeDetectionResult(
                is_new=False,
                has_changed=False,
                change_type=ChangeType.NO_CHANGE,
                previous_version=previous,
            )

        changes = self._diff(previous, normalize_document(document), content_changed, metadata_changed)
        significance = self.calculate_significance(changes)

        if content_changed:
            change_type = ChangeType.CONTENT_UPDATED
        elif "title" in changes:
            change_type = ChangeType.TITLE_CHANGED
        elif "effective_date" in changes or "published_date" in changes:
            change_type = ChangeType.DATE_CHANGED
        else:
            change_type = ChangeType.METADATA_UPDATED

        return ChangeDetectionResult(
            is_new=False,
            has_changed=True,
            change_type=change_type,
            changes=changes,
            previous_version=previous,
            significance_score=significance,
        )

    @staticmethod
    def calculate_significance(changes: Dict[str, Any]) -> float:
        """Sum the weights of the changed fields, capped at 1.0."""
        weight_keys = {_WEIGHT_KEYS.get(name, name) for name in changes}
        score = sum(SIGNIFICANCE_WEIGHTS.get(key, 0.0) for key in weight_keys)
        return min(round(score, 4), MAX_SIGNIFICANCE)

    def _diff(
        self,
        previous: DocumentVersion,
        doc: Dict[str, Any],
        content_changed: bool,
        metadata_changed: bool,
    ) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}

        if previous.document_title != doc["title"]:
            changes["title"] = {"old": previous.document_title, "new": doc["title"]}

        if content_changed:
            changes["content"] = {"changed": True}

        if metadata_changed:
            for name in METADATA_DIFF_FIELDS:
                old = getattr(previous, name)
                if old != doc[name]:
                    changes[name] = {"old": old, "new": doc[name]}

        if previous.summary != doc["summary"]:
            changes["summary"] = {
                "changed": True,
                "length_diff": len(doc["summary"] or "") - len(previous.summary or ""),
            }

        return changes

    async def process_document(
        self,
        source_id: int,
        document: Dict[str, Any],
        crawl_job_id: Optional[int] = None,
    ) -> ProcessResult:
        """Detect changes and write a new version plus change record when needed.

        Nothing is written for an unchanged document.

        Args:
            source_id: Owning source
            document: Document fields; must carry url, source_url or document_url
            crawl_job_id: Job that produced the document, if any

        Returns:
            ProcessResult with the version and change ids

        Raises:
            ValueError: If the document has no URL
        """
        doc = normalize_document(document)
        document_url = doc["document_url"]
        if not document_url:
            raise ValueError("Document has no url, source_url or document_url")

        detection = await self.detect_change(source_id, document_url, document)

        if not (detection.is_new or detection.has_changed):
            logger.debug(f"No change for {document_url}")
            return ProcessResult(detection=detection, version_id=detection.previous_version.id)

        version_id = await self.store.save_version(source_id, document_url, {
            "document_title": doc["title"],
            "content_type": doc["content_type"],
            "content_hash": self.generate_content_hash(document),
            "metadata_hash": self.hash_metadata(document),
            "category": doc["category"],
            "issuing_body": doc["issuing_body"],
            "effective_date": doc["effective_date"],
            "published_date": doc["published_date"],
            "summary": doc["summary"],
            "topics": doc["topics"],
            "key_numbers": doc["key_numbers"],
            "file_path": doc["file_path"],
            "file_size_bytes": doc["file_size_bytes"],
            "change_type": detection.change_type.value,
            "changes_detected": detection.changes,
            "full_data": document,
        })

        if detection.is_new:
            change_summary = f"New document: {doc['title']}"
        else:
            change_summary = f"Updated: {', '.join(detection.changes)}"

        significance = detection.significance_score
        change_id = await self.store.record_change(
            source_id=source_id,
            document_url=document_url,
            new_version_id=version_id,
            change_type=detection.change_type.value,
            significance_score=significance,
            requires_review=significance >= REVIEW_THRESHOLD,
            old_version_id=detection.previous_version.id if detection.previous_version else None,
            change_summary=change_summary,
            changes_detected=detection.changes,
            crawl_job_id=crawl_job_id,
        )

        logger.info(f"✓ {detection.change_type.value}: {document_url} (significance {significance})")
        return ProcessResult(detection=detection, version_id=version_id, change_id=change_id)

    async def get_version_history(self, source_id: int, document_url: str) -> List[DocumentVersion]:
        return await self.store.get_version_history(source_id, document_url)

    async def get_recent_changes(self, source_id: Optional[int] = None, limit: int = 50) -> List[DocumentChange]:
        return await self.store.get_recent_changes(source_id, limit)

    async def get_changes_for_review(self, limit: int = 50) -> List[DocumentChange]:
        return await self.store.get_changes_for_review(limit)
