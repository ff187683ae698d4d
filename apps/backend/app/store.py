"""
Record store for canonical job postings, sources and ingestion runs.

JobStore is the boundary the orchestrator writes through:
- InMemoryJobStore: dict-backed, used by tests and --dry-run
- PostgresJobStore: psycopg2 against DATABASE_URL

Every PostgresJobStore failure surfaces as PersistenceError.
"""

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from core.errors import PersistenceError
from core.models import (
    CanonicalJobPosting,
    CompanyRef,
    DedupeInfo,
    EmploymentType,
    JobStatus,
    LocationRef,
    RunRecord,
    SalaryRange,
    Seniority,
    SourceDescriptor,
    SourceRef,
    SourceType,
    WorkMode,
)

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Durable record store used by the ingestion orchestrator"""

    @abstractmethod
    def ensure_source(self, name: str, vendor_type: SourceType, base_url: Optional[str] = None) -> SourceDescriptor:
        """Return the source for (name, vendor_type), creating it if missing."""

    @abstractmethod
    def create_run(self, run: RunRecord):
        pass

    @abstractmethod
    def save_run(self, run: RunRecord):
        pass

    @abstractmethod
    def find_by_source_job_id(self, vendor_type: SourceType, name: str, source_job_id: str) -> Optional[CanonicalJobPosting]:
        pass

    @abstractmethod
    def find_by_url(self, url: str) -> Optional[CanonicalJobPosting]:
        pass

    @abstractmethod
    def find_by_fingerprint(self, vendor_type: SourceType, name: str, fingerprint: str) -> Optional[CanonicalJobPosting]:
        pass

    @abstractmethod
    def find_stale(self, vendor_type: SourceType, name: str, cutoff: datetime) -> List[CanonicalJobPosting]:
        """Non-expired postings of one source last seen before `cutoff`."""

    @abstractmethod
    def insert(self, posting: CanonicalJobPosting) -> CanonicalJobPosting:
        """Persist a new posting and return it with its assigned id."""

    @abstractmethod
    def update(self, posting: CanonicalJobPosting):
        pass


class InMemoryJobStore(JobStore):
    """Dict-backed store. Reads and writes copies so callers never share state."""

    def __init__(self):
        self.sources: Dict[tuple, SourceDescriptor] = {}
        self.runs: Dict[str, RunRecord] = {}
        self.postings: Dict[str, CanonicalJobPosting] = {}

    def ensure_source(self, name, vendor_type, base_url=None):
        key = (name, vendor_type)
        if key not in self.sources:
            self.sources[key] = SourceDescriptor(name=name, vendor_type=vendor_type, base_url=base_url)
        return self.sources[key]

    def create_run(self, run):
        self.runs[run.id] = copy.deepcopy(run)

    def save_run(self, run):
        self.runs[run.id] = copy.deepcopy(run)

    def _first(self, predicate) -> Optional[CanonicalJobPosting]:
        for posting in self.postings.values():
            if predicate(posting):
                return copy.deepcopy(posting)
        return None

    def find_by_source_job_id(self, vendor_type, name, source_job_id):
        return self._first(lambda p: (
            p.source.vendor_type == vendor_type
            and p.source.name == name
            and p.source.source_job_id == source_job_id
        ))

    def find_by_url(self, url):
        return self._first(lambda p: p.source.url == url)

    def find_by_fingerprint(self, vendor_type, name, fingerprint):
        return self._first(lambda p: (
            p.source.vendor_type == vendor_type
            and p.source.name == name
            and p.dedupe.fingerprint == fingerprint
        ))

    def find_stale(self, vendor_type, name, cutoff):
        return [
            copy.deepcopy(p) for p in self.postings.values()
            if p.source.vendor_type == vendor_type
            and p.source.name == name
            and p.status != JobStatus.EXPIRED
            and p.last_seen_at < cutoff
        ]

    def insert(self, posting):
        stored = copy.deepcopy(posting)
        stored.id = stored.id or str(uuid.uuid4())
        self.postings[stored.id] = stored
        return copy.deepcopy(stored)

    def update(self, posting):
        if posting.id not in self.postings:
            raise PersistenceError(f"Unknown posting id {posting.id}")
        self.postings[posting.id] = copy.deepcopy(posting)

    def all_postings(self) -> List[CanonicalJobPosting]:
        return [copy.deepcopy(p) for p in self.postings.values()]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    base_url TEXT,
    enabled BOOLEAN NOT NULL DEFAULT TRUE,
    UNIQUE (name, type)
);

CREATE TABLE IF NOT EXISTS ingestion_runs (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL REFERENCES sources(id),
    started_at TIMESTAMPTZ NOT NULL,
    finished_at TIMESTAMPTZ,
    status TEXT NOT NULL,
    fetched INTEGER NOT NULL DEFAULT 0,
    parsed INTEGER NOT NULL DEFAULT 0,
    normalized INTEGER NOT NULL DEFAULT 0,
    indexed INTEGER NOT NULL DEFAULT 0,
    duplicates INTEGER NOT NULL DEFAULT 0,
    errors INTEGER NOT NULL DEFAULT 0,
    error_sample TEXT
);

CREATE TABLE IF NOT EXISTS job_postings (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    source_name TEXT NOT NULL,
    source_url TEXT NOT NULL,
    source_job_id TEXT,
    title TEXT NOT NULL,
    company_name TEXT NOT NULL,
    company_website TEXT,
    company_industry TEXT,
    location_text TEXT NOT NULL DEFAULT '',
    location_country TEXT,
    location_state TEXT,
    location_city TEXT,
    work_mode TEXT NOT NULL,
    seniority TEXT NOT NULL,
    employment_type TEXT NOT NULL,
    salary_min DOUBLE PRECISION,
    salary_max DOUBLE PRECISION,
    salary_currency TEXT,
    salary_period TEXT,
    description TEXT NOT NULL DEFAULT '',
    tags TEXT[] NOT NULL DEFAULT '{}',
    languages TEXT[] NOT NULL DEFAULT '{}',
    posted_at TIMESTAMPTZ,
    captured_at TIMESTAMPTZ NOT NULL,
    last_seen_at TIMESTAMPTZ NOT NULL,
    status TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    cluster_id TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_job_postings_source_job
    ON job_postings (source_type, source_name, source_job_id);
CREATE INDEX IF NOT EXISTS idx_job_postings_source_url ON job_postings (source_url);
CREATE INDEX IF NOT EXISTS idx_job_postings_fingerprint
    ON job_postings (source_type, source_name, fingerprint);
"""

POSTING_COLUMNS = (
    "id", "source_type", "source_name", "source_url", "source_job_id",
    "title", "company_name", "company_website", "company_industry",
    "location_text", "location_country", "location_state", "location_city",
    "work_mode", "seniority", "employment_type",
    "salary_min", "salary_max", "salary_currency", "salary_period",
    "description", "tags", "languages",
    "posted_at", "captured_at", "last_seen_at", "status",
    "fingerprint", "cluster_id", "metadata",
)


def _to_json(value) -> Json:
    return Json(value, dumps=lambda obj: json.dumps(obj, default=str))


def posting_to_row(posting: CanonicalJobPosting) -> Dict:
    location = posting.location or LocationRef()
    salary = posting.salary or SalaryRange()
    return {
        "id": posting.id,
        "source_type": posting.source.vendor_type.value,
        "source_name": posting.source.name,
        "source_url": posting.source.url,
        "source_job_id": posting.source.source_job_id,
        "title": posting.title,
        "company_name": posting.company.name,
        "company_website": posting.company.website,
        "company_industry": posting.company.industry,
        "location_text": posting.location_text or "",
        "location_country": location.country,
        "location_state": location.state,
        "location_city": location.city,
        "work_mode": posting.work_mode.value,
        "seniority": posting.seniority.value,
        "employment_type": posting.employment_type.value,
        "salary_min": salary.min,
        "salary_max": salary.max,
        "salary_currency": salary.currency,
        "salary_period": salary.period,
        "description": posting.description or "",
        "tags": list(posting.tags),
        "languages": list(posting.languages),
        "posted_at": posting.posted_at,
        "captured_at": posting.captured_at,
        "last_seen_at": posting.last_seen_at,
        "status": posting.status.value,
        "fingerprint": posting.dedupe.fingerprint,
        "cluster_id": posting.dedupe.cluster_id,
        "metadata": _to_json(posting.metadata or {}),
    }


def row_to_posting(row: Dict) -> CanonicalJobPosting:
    location = None
    if row.get("location_country") or row.get("location_state") or row.get("location_city"):
        location = LocationRef(row.get("location_country"), row.get("location_state"), row.get("location_city"))

    salary = SalaryRange(row.get("salary_min"), row.get("salary_max"), row.get("salary_currency"), row.get("salary_period"))

    return CanonicalJobPosting(
        id=row["id"],
        source=SourceRef(
            name=row["source_name"],
            vendor_type=SourceType.parse(row["source_type"], SourceType.CAREERS_PAGE),
            url=row["source_url"],
            source_job_id=row.get("source_job_id"),
        ),
        title=row["title"],
        company=CompanyRef(row["company_name"], row.get("company_website"), row.get("company_industry")),
        location_text=row.get("location_text") or "",
        location=location,
        description=row.get("description") or "",
        work_mode=WorkMode(row["work_mode"]),
        seniority=Seniority(row["seniority"]),
        employment_type=EmploymentType(row["employment_type"]),
        salary=salary if salary.populated_fields() else None,
        tags=list(row.get("tags") or []),
        languages=list(row.get("languages") or []),
        posted_at=row.get("posted_at"),
        captured_at=row["captured_at"],
        last_seen_at=row["last_seen_at"],
        status=JobStatus(row["status"]),
        dedupe=DedupeInfo(row["fingerprint"], row.get("cluster_id")),
        metadata=row.get("metadata") or {},
    )


class PostgresJobStore(JobStore):
    """PostgreSQL store (psycopg2, RealDictCursor)"""

    def __init__(self, database_url: str):
        if not database_url:
            raise PersistenceError("DATABASE_URL is not configured")
        self.database_url = database_url
        self._conn = None

    def _get_db_conn(self):
        if self._conn is None or self._conn.closed:
            try:
                self._conn = psycopg2.connect(self.database_url, connect_timeout=5)
            except psycopg2.Error as e:
                logger.error(f"[store] Failed to connect to database: {e}")
                raise PersistenceError(f"Database connection failed: {e}") from e
        return self._conn

    @contextmanager
    def _cursor(self):
        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except psycopg2.Error as e:
            try:
                conn.rollback()
            except psycopg2.Error:
                logger.warning("[store] Rollback failed; connection will be reopened")
                self._conn = None
            raise PersistenceError(f"Database operation failed: {e}") from e

    def close(self):
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
        self._conn = None

    def ensure_schema(self):
        with self._cursor() as cursor:
            cursor.execute(SCHEMA_SQL)
        logger.info("[store] Schema ensured")

    def ensure_source(self, name, vendor_type, base_url=None):
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, name, type, base_url, enabled FROM sources WHERE name = %s AND type = %s",
                (name, vendor_type.value),
            )
            row = cursor.fetchone()
            if row is None:
                source = SourceDescriptor(name=name, vendor_type=vendor_type, base_url=base_url)
                cursor.execute(
                    "INSERT INTO sources (id, name, type, base_url, enabled) VALUES (%s, %s, %s, %s, %s)",
                    (source.id, source.name, vendor_type.value, base_url, source.enabled),
                )
                logger.info(f"[store] Registered source {name} ({vendor_type.value})")
                return source
        return SourceDescriptor(
            id=row["id"],
            name=row["name"],
            vendor_type=vendor_type,
            base_url=row["base_url"],
            enabled=row["enabled"],
        )

    def _write_run(self, run: RunRecord, insert: bool):
        values = (
            run.source_id, run.started_at, run.finished_at, run.status.value,
            run.fetched, run.parsed, run.normalized, run.indexed, run.duplicates,
            run.errors, run.error_sample, run.id,
        )
        with self._cursor() as cursor:
            if insert:
                cursor.execute(
                    """
                    INSERT INTO ingestion_runs (
                        source_id, started_at, finished_at, status, fetched, parsed,
                        normalized, indexed, duplicates, errors, error_sample, id
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    values,
                )
            else:
                cursor.execute(
                    """
                    UPDATE ingestion_runs SET
                        source_id = %s, started_at = %s, finished_at = %s, status = %s,
                        fetched = %s, parsed = %s, normalized = %s, indexed = %s,
                        duplicates = %s, errors = %s, error_sample = %s
                    WHERE id = %s
                    """,
                    values,
                )

    def create_run(self, run):
        self._write_run(run, insert=True)

    def save_run(self, run):
        self._write_run(run, insert=False)

    def _find_one(self, where: str, params: tuple) -> Optional[CanonicalJobPosting]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT * FROM job_postings WHERE {where} LIMIT 1", params)
            row = cursor.fetchone()
        return row_to_posting(row) if row else None

    def find_by_source_job_id(self, vendor_type, name, source_job_id):
        return self._find_one(
            "source_type = %s AND source_name = %s AND source_job_id = %s",
            (vendor_type.value, name, source_job_id),
        )

    def find_by_url(self, url):
        return self._find_one("source_url = %s", (url,))

    def find_by_fingerprint(self, vendor_type, name, fingerprint):
        return self._find_one(
            "source_type = %s AND source_name = %s AND fingerprint = %s",
            (vendor_type.value, name, fingerprint),
        )

    def find_stale(self, vendor_type, name, cutoff):
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT * FROM job_postings
                WHERE source_type = %s AND source_name = %s
                  AND status <> %s AND last_seen_at < %s
                """,
                (vendor_type.value, name, JobStatus.EXPIRED.value, cutoff),
            )
            rows = cursor.fetchall()
        return [row_to_posting(row) for row in rows]

    def insert(self, posting):
        stored = copy.deepcopy(posting)
        stored.id = stored.id or str(uuid.uuid4())
        row = posting_to_row(stored)
        columns = ", ".join(POSTING_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in POSTING_COLUMNS)
        with self._cursor() as cursor:
            cursor.execute(f"INSERT INTO job_postings ({columns}) VALUES ({placeholders})", row)
        return stored

    def update(self, posting):
        if not posting.id:
            raise PersistenceError("Cannot update a posting without id")
        row = posting_to_row(posting)
        assignments = ", ".join(f"{c} = %({c})s" for c in POSTING_COLUMNS if c != "id")
        with self._cursor() as cursor:
            cursor.execute(f"UPDATE job_postings SET {assignments} WHERE id = %(id)s", row)
            updated = cursor.rowcount
        if updated == 0:
            raise PersistenceError(f"Unknown posting id {posting.id}")
