"""
Record store tests: in-memory semantics and PostgresJobStore against a
mocked psycopg2 connection.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from app.store import InMemoryJobStore, PostgresJobStore, posting_to_row, row_to_posting
from core.errors import PersistenceError
from core.models import (
    CanonicalJobPosting,
    CompanyRef,
    DedupeInfo,
    JobStatus,
    LocationRef,
    RunRecord,
    RunStatus,
    SalaryRange,
    SourceRef,
    SourceType,
    WorkMode,
)

NOW = datetime(2024, 5, 10, tzinfo=timezone.utc)


def make_posting(job_id="1", name="InfoJobs", vendor=SourceType.INFOJOBS, **overrides):
    values = dict(
        source=SourceRef(name, vendor, f"https://www.infojobs.com.br/vaga-de-dev__{job_id}.aspx", job_id),
        title="Desenvolvedor Python",
        company=CompanyRef("Acme"),
        location_text="Sao Paulo - SP",
        work_mode=WorkMode.REMOTE,
        tags=["python"],
        languages=["pt-BR"],
        captured_at=NOW,
        last_seen_at=NOW,
        dedupe=DedupeInfo(f"fp-{job_id}"),
        metadata={"source": name},
    )
    values.update(overrides)
    return CanonicalJobPosting(**values)


class TestInMemoryJobStore:
    def test_insert_assigns_id_and_copies(self):
        store = InMemoryJobStore()
        posting = make_posting()

        stored = store.insert(posting)
        assert stored.id
        assert posting.id is None

        stored.title = "changed"
        assert store.find_by_url(posting.source.url).title == "Desenvolvedor Python"

    def test_finders_scoped_by_source(self):
        store = InMemoryJobStore()
        store.insert(make_posting("1"))

        assert store.find_by_source_job_id(SourceType.INFOJOBS, "InfoJobs", "1") is not None
        assert store.find_by_source_job_id(SourceType.INFOJOBS, "Stone", "1") is None
        assert store.find_by_source_job_id(SourceType.VAGAS, "InfoJobs", "1") is None
        assert store.find_by_fingerprint(SourceType.INFOJOBS, "InfoJobs", "fp-1") is not None
        assert store.find_by_fingerprint(SourceType.INFOJOBS, "Other", "fp-1") is None
        assert store.find_by_url("https://example.com/none") is None

    def test_find_stale(self):
        store = InMemoryJobStore()
        store.insert(make_posting("1", last_seen_at=NOW - timedelta(days=20)))
        store.insert(make_posting("2", last_seen_at=NOW))
        store.insert(make_posting("3", last_seen_at=NOW - timedelta(days=20), status=JobStatus.EXPIRED))
        store.insert(make_posting("4", name="Stone", vendor=SourceType.VAGAS, last_seen_at=NOW - timedelta(days=20)))

        stale = store.find_stale(SourceType.INFOJOBS, "InfoJobs", NOW - timedelta(days=14))
        assert [p.source.source_job_id for p in stale] == ["1"]

    def test_update(self):
        store = InMemoryJobStore()
        stored = store.insert(make_posting())
        stored.status = JobStatus.EXPIRED
        store.update(stored)
        assert store.all_postings()[0].status == JobStatus.EXPIRED

    def test_update_unknown_id(self):
        with pytest.raises(PersistenceError):
            InMemoryJobStore().update(make_posting(id="missing"))

    def test_ensure_source_is_idempotent(self):
        store = InMemoryJobStore()
        first = store.ensure_source("InfoJobs", SourceType.INFOJOBS)
        second = store.ensure_source("InfoJobs", SourceType.INFOJOBS)
        other = store.ensure_source("InfoJobs", SourceType.VAGAS)
        assert first.id == second.id
        assert other.id != first.id

    def test_runs_saved_as_snapshots(self):
        store = InMemoryJobStore()
        run = RunRecord(source_id="s1")
        store.create_run(run)
        run.status = RunStatus.SUCCESS
        assert store.runs[run.id].status == RunStatus.RUNNING
        store.save_run(run)
        assert store.runs[run.id].status == RunStatus.SUCCESS


class TestRowMapping:
    def test_round_trip(self):
        posting = make_posting(
            id="abc",
            location=LocationRef(country="BR", state="SP"),
            salary=SalaryRange(5000.0, 7000.0, "BRL", "month"),
            posted_at=NOW - timedelta(days=1),
        )
        row = posting_to_row(posting)
        assert row["source_type"] == "InfoJobs"
        assert row["work_mode"] == "Remote"
        assert row["location_country"] == "BR"
        assert row["salary_period"] == "month"

        row["metadata"] = row["metadata"].adapted
        assert row_to_posting(row) == posting

    def test_empty_salary_and_location(self):
        row = posting_to_row(make_posting(id="abc"))
        row["metadata"] = row["metadata"].adapted
        restored = row_to_posting(row)
        assert restored.salary is None
        assert restored.location is None

    def test_unknown_source_type_falls_back(self):
        row = posting_to_row(make_posting(id="abc"))
        row["metadata"] = {}
        row["source_type"] = "Monster"
        assert row_to_posting(row).source.vendor_type == SourceType.CAREERS_PAGE


class TestPostgresJobStore:
    @pytest.fixture
    def db(self):
        with patch("app.store.psycopg2.connect") as connect:
            conn = MagicMock()
            conn.closed = False
            cursor = MagicMock()
            conn.cursor.return_value.__enter__.return_value = cursor
            connect.return_value = conn
            yield connect, conn, cursor

    def test_requires_url(self):
        with pytest.raises(PersistenceError):
            PostgresJobStore("")

    def test_existing_source(self, db):
        _, conn, cursor = db
        cursor.fetchone.return_value = {
            "id": "src-1", "name": "InfoJobs", "type": "InfoJobs", "base_url": None, "enabled": True,
        }

        source = PostgresJobStore("postgresql://localhost/jobs").ensure_source("InfoJobs", SourceType.INFOJOBS)

        assert source.id == "src-1"
        assert cursor.execute.call_count == 1
        conn.commit.assert_called_once()

    def test_new_source_inserted(self, db):
        _, _, cursor = db
        cursor.fetchone.return_value = None

        source = PostgresJobStore("postgresql://localhost/jobs").ensure_source("Stone", SourceType.VAGAS)

        sql, params = cursor.execute.call_args.args
        assert sql.startswith("INSERT INTO sources")
        assert params[0] == source.id
        assert params[2] == "Vagas"

    def test_insert_returns_copy_with_id(self, db):
        _, _, cursor = db
        posting = make_posting()

        stored = PostgresJobStore("postgresql://localhost/jobs").insert(posting)

        assert stored.id
        assert posting.id is None
        sql, row = cursor.execute.call_args.args
        assert sql.startswith("INSERT INTO job_postings")
        assert row["id"] == stored.id
        assert row["fingerprint"] == "fp-1"

    def test_find_maps_row(self, db):
        _, _, cursor = db
        row = posting_to_row(make_posting(id="abc"))
        row["metadata"] = {"source": "InfoJobs"}
        cursor.fetchone.return_value = row

        found = PostgresJobStore("postgresql://localhost/jobs").find_by_url(row["source_url"])

        assert found.id == "abc"
        assert "LIMIT 1" in cursor.execute.call_args.args[0]

    def test_update_unknown_id(self, db):
        _, _, cursor = db
        cursor.rowcount = 0
        with pytest.raises(PersistenceError):
            PostgresJobStore("postgresql://localhost/jobs").update(make_posting(id="missing"))

    def test_database_error_rolls_back(self, db):
        _, conn, cursor = db
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        with pytest.raises(PersistenceError, match="server closed"):
            PostgresJobStore("postgresql://localhost/jobs").find_by_url("https://example.com")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_connect_failure(self, db):
        connect, _, _ = db
        connect.side_effect = psycopg2.OperationalError("could not connect")
        with pytest.raises(PersistenceError, match="Database connection failed"):
            PostgresJobStore("postgresql://localhost/jobs").ensure_schema()

    def test_close(self, db):
        _, conn, _ = db
        store = PostgresJobStore("postgresql://localhost/jobs")
        store.ensure_schema()
        store.close()
        conn.close.assert_called_once()
