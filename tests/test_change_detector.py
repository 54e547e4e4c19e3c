"""Tests for DocumentChangeDetector."""

import pytest
import pytest_asyncio

from regwatch.change_detector import DocumentChangeDetector, normalize_document
from regwatch.models import ChangeType

pytest_plugins = ('pytest_asyncio',)

URL = "https://regulator.example/circulars/2024-07"


def base_document(**overrides):
    document = {
        "url": URL,
        "title": "Circular 2024-07 on tariff adjustments",
        "summary": "Tariffs for residential customers rise by 3 percent.",
        "topics": ["tariffs", "residential"],
        "key_numbers": [{"label": "increase", "value": "3%"}],
        "issuing_body": "Energy Regulatory Commission",
        "effective_date": "2024-08-01",
        "published_date": "2024-07-15",
        "category": "circular",
    }
    document.update(overrides)
    return document


@pytest_asyncio.fixture
async def source_id(store):
    source = await store.add_source("Regulator", "https://regulator.example/", "policy")
    return source.id


@pytest.fixture
def detector(store):
    return DocumentChangeDetector(store)


class TestHashing:
    """Tests for content and metadata hashing."""

    def test_content_hash_ignores_case_and_key_order(self, detector):
        first = detector.generate_content_hash(base_document(key_numbers=[{"a": 1, "b": 2}]))
        second = detector.generate_content_hash(base_document(
            summary="TARIFFS FOR RESIDENTIAL CUSTOMERS RISE BY 3 PERCENT.",
            key_numbers=[{"b": 2, "a": 1}],
        ))
        assert first == second

    def test_content_hash_ignores_metadata(self, detector):
        assert detector.generate_content_hash(base_document()) == detector.generate_content_hash(
            base_document(title="Renamed", category="notice")
        )

    def test_metadata_hash_ignores_content(self, detector):
        assert detector.hash_metadata(base_document()) == detector.hash_metadata(
            base_document(summary="Different summary", topics=["other"])
        )

    def test_metadata_hash_tracks_dates(self, detector):
        assert detector.hash_metadata(base_document()) != detector.hash_metadata(
            base_document(effective_date="2024-09-01")
        )

    def test_normalize_aliases(self):
        doc = normalize_document({
            "source_url": URL,
            "document_title": " Title ",
            "type": "notice",
            "date_effective": "2024-01-01",
            "date_published": "2023-12-01",
            "file_size": 1024,
        })
        assert doc["document_url"] == URL
        assert doc["title"] == "Title"
        assert doc["category"] == "notice"
        assert doc["effective_date"] == "2024-01-01"
        assert doc["published_date"] == "2023-12-01"
        assert doc["file_size_bytes"] == 1024
        assert doc["content_type"] == "html"


class TestSignificance:
    """Tests for calculate_significance."""

    def test_single_fields(self):
        assert DocumentChangeDetector.calculate_significance({"content": {}}) == 0.4
        assert DocumentChangeDetector.calculate_significance({"category": {}}) == 0.1

    def test_dates_counted_once(self):
        changes = {"effective_date": {}, "published_date": {}}
        assert DocumentChangeDetector.calculate_significance(changes) == 0.2

    def test_capped_at_one(self):
        changes = {
            "title": {}, "content": {}, "effective_date": {}, "issuing_body": {},
            "category": {}, "summary": {},
        }
        assert DocumentChangeDetector.calculate_significance(changes) == 1.0

    def test_unknown_fields_ignored(self):
        assert DocumentChangeDetector.calculate_significance({"file_path": {}}) == 0.0


class TestProcessDocument:
    """Tests for version writing through process_document."""

    @pytest.mark.asyncio
    async def test_new_document(self, detector, store, source_id):
        result = await detector.process_document(source_id, base_document(), crawl_job_id=None)

        assert result.detection.is_new is True
        assert result.detection.change_type == ChangeType.NEW
        assert result.written is True

        versions = await store.get_version_history(source_id, URL)
        assert len(versions) == 1
        assert versions[0].version_number == 1
        assert versions[0].topics == ["tariffs", "residential"]

        changes = await store.get_recent_changes(source_id)
        assert changes[0].change_type == "new"
        assert changes[0].significance_score == 0.0
        assert changes[0].requires_review is False
        assert changes[0].old_version_id is None

    @pytest.mark.asyncio
    async def test_unchanged_document_writes_nothing(self, detector, store, source_id):
        first = await detector.process_document(source_id, base_document())
        second = await detector.process_document(source_id, base_document())

        assert second.detection.change_type == ChangeType.NO_CHANGE
        assert second.written is False
        assert second.version_id == first.version_id
        assert len(await store.get_version_history(source_id, URL)) == 1
        assert len(await store.get_recent_changes(source_id)) == 1

    @pytest.mark.asyncio
    async def test_category_change_is_minor(self, detector, store, source_id):
        await detector.process_document(source_id, base_document())
        result = await detector.process_document(source_id, base_document(category="notice"))

        assert result.detection.change_type == ChangeType.METADATA_UPDATED
        assert result.detection.significance_score == 0.1
        assert result.detection.changes["category"] == {"old": "circular", "new": "notice"}

        change = (await store.get_recent_changes(source_id))[0]
        assert change.requires_review is False

    @pytest.mark.asyncio
    async def test_content_and_title_change_requires_review(self, detector, store, source_id):
        first = await detector.process_document(source_id, base_document())
        result = await detector.process_document(
            source_id, base_document(title="Circular 2024-07 (amended)", topics=["tariffs", "industrial"])
        )

        assert result.detection.change_type == ChangeType.CONTENT_UPDATED
        assert set(result.detection.changes) == {"title", "content"}
        assert result.detection.significance_score == 0.7

        change = (await store.get_changes_for_review())[0]
        assert change.requires_review is True
        assert change.old_version_id == first.version_id
        assert change.new_version_id == result.version_id

        current = await store.get_current_version(source_id, URL)
        assert current.version_number == 2
        assert current.document_title == "Circular 2024-07 (amended)"

    @pytest.mark.asyncio
    async def test_versions_increase_with_single_current(self, detector, store, source_id):
        summaries = [
            "Tariffs rise by 3 percent.",
            "Tariffs rise by 4 percent.",
            "Tariffs rise by 5 percent.",
        ]

        for n, summary in enumerate(summaries, start=1):
            result = await detector.process_document(source_id, base_document(summary=summary))
            assert result.written is True

            history = await store.get_version_history(source_id, URL)
            assert [v.version_number for v in history] == list(range(n, 0, -1))
            assert sum(v.is_current for v in history) == 1
            assert history[0].is_current is True
            assert history[0].id == result.version_id

    @pytest.mark.asyncio
    async def test_title_only_change(self, detector, source_id):
        await detector.process_document(source_id, base_document())
        result = await detector.process_document(source_id, base_document(title="New title"))

        assert result.detection.change_type == ChangeType.TITLE_CHANGED
        assert result.detection.significance_score == 0.3

    @pytest.mark.asyncio
    async def test_date_change(self, detector, source_id):
        await detector.process_document(source_id, base_document())
        result = await detector.process_document(
            source_id, base_document(effective_date="2024-09-01", published_date="2024-07-20")
        )

        assert result.detection.change_type == ChangeType.DATE_CHANGED
        assert result.detection.significance_score == 0.2

    @pytest.mark.asyncio
    async def test_summary_change(self, detector, source_id):
        await detector.process_document(source_id, base_document())
        result = await detector.process_document(source_id, base_document(summary="Tariffs rise."))

        assert result.detection.change_type == ChangeType.CONTENT_UPDATED
        assert result.detection.changes["summary"]["changed"] is True
        assert result.detection.changes["summary"]["length_diff"] < 0
        assert result.detection.significance_score == 0.6

    @pytest.mark.asyncio
    async def test_document_without_url_rejected(self, detector, source_id):
        with pytest.raises(ValueError):
            await detector.process_document(source_id, {"title": "No URL"})

    @pytest.mark.asyncio
    async def test_documents_tracked_per_url(self, detector, store, source_id):
        await detector.process_document(source_id, base_document())
        await detector.process_document(source_id, base_document(url=URL + "-b"))

        assert len(await detector.get_version_history(source_id, URL)) == 1
        assert len(await detector.get_version_history(source_id, URL + "-b")) == 1
        assert len(await detector.get_recent_changes(source_id)) == 2
