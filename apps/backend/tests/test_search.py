"""
Search index tests: document shape, the in-memory index and the
Meilisearch client wrapper (mocked).
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from meilisearch.errors import MeilisearchError

import app.search as search_module
from app.search import (
    FILTERABLE_ATTRIBUTES,
    SORTABLE_ATTRIBUTES,
    InMemorySearchIndex,
    MeiliSearchIndex,
    to_search_document,
)
from core.errors import PersistenceError
from core.models import (
    CanonicalJobPosting,
    CompanyRef,
    DedupeInfo,
    JobStatus,
    SourceRef,
    SourceType,
    WorkMode,
)

CAPTURED = datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)


def make_posting(**overrides):
    values = dict(
        id="job-1",
        source=SourceRef("InfoJobs", SourceType.INFOJOBS, "https://www.infojobs.com.br/vaga-de-dev__1.aspx", "1"),
        title="Desenvolvedor Python",
        company=CompanyRef("Acme"),
        location_text="Sao Paulo - SP",
        work_mode=WorkMode.REMOTE,
        tags=["python", "aws"],
        captured_at=CAPTURED,
        last_seen_at=CAPTURED,
        dedupe=DedupeInfo("abc123"),
    )
    values.update(overrides)
    return CanonicalJobPosting(**values)


@pytest.fixture(autouse=True)
def reset_ensured_indexes():
    search_module._ensured_indexes.clear()
    yield
    search_module._ensured_indexes.clear()


class TestSearchDocument:
    def test_fields(self):
        doc = to_search_document(make_posting())
        assert doc["id"] == "job-1"
        assert doc["companyName"] == "Acme"
        assert doc["company"] == "Acme"
        assert doc["workMode"] == "Remote"
        assert doc["seniority"] == "Unknown"
        assert doc["employmentType"] == "Unknown"
        assert doc["tags"] == ["python", "aws"]
        assert doc["postedAt"] is None
        assert doc["capturedAt"] == "2024-05-02T09:30:00+00:00"
        assert doc["sourceName"] == "InfoJobs"
        assert doc["fingerprint"] == "abc123"
        assert doc["status"] == "Active"

    def test_expired_status(self):
        assert to_search_document(make_posting(status=JobStatus.EXPIRED))["status"] == "Expired"

    def test_filterable_fields_present(self):
        doc = to_search_document(make_posting())
        assert all(attr in doc for attr in FILTERABLE_ATTRIBUTES + SORTABLE_ATTRIBUTES)


class TestInMemoryIndex:
    def test_upsert_replaces_by_id(self):
        index = InMemorySearchIndex()
        index.ensure_index()
        index.upsert(to_search_document(make_posting()))
        index.upsert(to_search_document(make_posting(title="Desenvolvedor Python Senior")))

        assert index.ensured
        assert index.search_ids() == ["job-1"]
        assert index.documents["job-1"]["title"] == "Desenvolvedor Python Senior"

        index.delete_all()
        assert index.search_ids() == []


class TestMeiliSearchIndex:
    @pytest.fixture
    def client(self):
        with patch("app.search.meilisearch.Client") as client_cls:
            yield client_cls.return_value

    def test_creates_missing_index_once(self, client):
        client.get_index.side_effect = MeilisearchError("index_not_found")
        client.create_index.return_value = MagicMock(task_uid=7)
        index = MeiliSearchIndex("http://localhost:7700", "key", "jobs_test")

        index.ensure_index()
        index.ensure_index()

        client.create_index.assert_called_once_with("jobs_test", {"primaryKey": "id"})
        client.wait_for_task.assert_called_once_with(7)
        configured = client.index.return_value
        configured.update_filterable_attributes.assert_called_once_with(FILTERABLE_ATTRIBUTES)
        configured.update_sortable_attributes.assert_called_once_with(SORTABLE_ATTRIBUTES)

    def test_existing_index_not_recreated(self, client):
        MeiliSearchIndex("http://localhost:7700", None, "jobs_test").ensure_index()
        client.create_index.assert_not_called()

    def test_setup_failure(self, client):
        client.index.return_value.update_filterable_attributes.side_effect = MeilisearchError("unauthorized")
        index = MeiliSearchIndex("http://localhost:7700", None, "jobs_test")

        with pytest.raises(PersistenceError):
            index.ensure_index()
        assert "jobs_test" not in search_module._ensured_indexes

    def test_upsert(self, client):
        doc = to_search_document(make_posting())
        MeiliSearchIndex("http://localhost:7700", None, "jobs_test").upsert(doc)
        client.index.assert_called_with("jobs_test")
        client.index.return_value.add_documents.assert_called_once_with([doc], primary_key="id")

    def test_upsert_failure_wrapped(self, client):
        client.index.return_value.add_documents.side_effect = MeilisearchError("timeout")
        with pytest.raises(PersistenceError, match="job-1"):
            MeiliSearchIndex("http://localhost:7700", None).upsert(to_search_document(make_posting()))
