"""
Canonical data model for ingested job postings, sources and runs.
"""

import uuid
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkMode(str, Enum):
    UNKNOWN = "Unknown"
    REMOTE = "Remote"
    HYBRID = "Hybrid"
    ONSITE = "Onsite"


class Seniority(str, Enum):
    UNKNOWN = "Unknown"
    INTERN = "Intern"
    JUNIOR = "Junior"
    MID = "Mid"
    SENIOR = "Senior"
    STAFF = "Staff"
    LEAD = "Lead"
    PRINCIPAL = "Principal"


class EmploymentType(str, Enum):
    UNKNOWN = "Unknown"
    CLT = "CLT"
    PJ = "PJ"
    CONTRACTOR = "Contractor"
    INTERNSHIP = "Internship"
    TEMPORARY = "Temporary"


class JobStatus(str, Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"


class RunStatus(str, Enum):
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"


class SourceType(str, Enum):
    LINKEDIN = "LinkedIn"
    GREENHOUSE = "Greenhouse"
    LEVER = "Lever"
    INDEED = "Indeed"
    CAREERS_PAGE = "CareersPage"
    INFOJOBS = "InfoJobs"
    VAGAS = "Vagas"
    JSONLD = "JsonLd"
    CORPORATE_CAREERS = "CorporateCareers"
    GUPY = "Gupy"
    WORKDAY = "Workday"
    FIXTURE = "Fixture"

    @classmethod
    def parse(cls, raw: Optional[str], fallback: "SourceType") -> "SourceType":
        """Case-insensitive lookup by value; unknown names give fallback."""
        if not raw or not raw.strip():
            return fallback
        wanted = raw.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return fallback


@dataclass
class SourceRef:
    name: str
    vendor_type: SourceType
    url: str
    source_job_id: Optional[str] = None


@dataclass
class CompanyRef:
    name: str
    website: Optional[str] = None
    industry: Optional[str] = None


@dataclass
class LocationRef:
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None


@dataclass
class SalaryRange:
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None
    period: Optional[str] = None

    def populated_fields(self) -> int:
        """Number of non-empty fields, used to compare salary quality."""
        return sum([
            self.min is not None,
            self.max is not None,
            bool(self.currency and self.currency.strip()),
            bool(self.period and self.period.strip()),
        ])


@dataclass
class DedupeInfo:
    fingerprint: str
    cluster_id: Optional[str] = None


@dataclass
class CanonicalJobPosting:
    source: SourceRef
    title: str
    company: CompanyRef
    location_text: str = ""
    description: str = ""
    location: Optional[LocationRef] = None
    work_mode: WorkMode = WorkMode.UNKNOWN
    seniority: Seniority = Seniority.UNKNOWN
    employment_type: EmploymentType = EmploymentType.UNKNOWN
    salary: Optional[SalaryRange] = None
    tags: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    posted_at: Optional[datetime] = None
    captured_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
    status: JobStatus = JobStatus.ACTIVE
    dedupe: DedupeInfo = field(default_factory=lambda: DedupeInfo(fingerprint=""))
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class ParsedSourceJob:
    """Pre-canonical job record produced by the format parsers."""
    title: str
    url: str
    company: str = "Unknown"
    location_text: str = ""
    description: Optional[str] = None
    salary_text: Optional[str] = None
    work_mode_text: Optional[str] = None
    source_job_id: Optional[str] = None
    posted_at: Optional[datetime] = None
    employment_type_text: Optional[str] = None


@dataclass
class FetchOptions:
    max_items_per_run: int = 20
    max_detail_fetch: int = 20


@dataclass
class SourceDescriptor:
    name: str
    vendor_type: SourceType
    base_url: Optional[str] = None
    enabled: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class RunRecord:
    source_id: str
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    fetched: int = 0
    parsed: int = 0
    normalized: int = 0
    indexed: int = 0
    duplicates: int = 0
    errors: int = 0
    error_sample: Optional[str] = None
    # Log-only counters, not persisted
    inserted: int = 0
    updated: int = 0
    expired: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def counters(self) -> Dict[str, int]:
        return {
            "fetched": self.fetched,
            "parsed": self.parsed,
            "normalized": self.normalized,
            "indexed": self.indexed,
            "inserted": self.inserted,
            "updated": self.updated,
            "duplicates": self.duplicates,
            "expired": self.expired,
            "errors": self.errors,
        }
