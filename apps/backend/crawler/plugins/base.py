"""
Base interface for job source adapters.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from core.errors import RunCancelled
from core.fingerprint import compute_fingerprint
from core.models import (
    CanonicalJobPosting,
    CompanyRef,
    DedupeInfo,
    EmploymentType,
    FetchOptions,
    JobStatus,
    LocationRef,
    SalaryRange,
    SourceRef,
    SourceType,
    WorkMode,
    utcnow,
)
from core.net import FetchResult, SourceHTTPClient

logger = logging.getLogger(__name__)


class AdapterStats:
    """Per-fetch counters kept by an adapter"""

    def __init__(self):
        self.parse_errors = 0
        self.detail_fetched = 0
        self.blocked = 0
        self.skipped = 0

    def __repr__(self):
        return (
            f"AdapterStats(parse_errors={self.parse_errors}, detail_fetched={self.detail_fetched}, "
            f"blocked={self.blocked}, skipped={self.skipped})"
        )


def check_cancelled(cancel: Optional[asyncio.Event]):
    if cancel is not None and cancel.is_set():
        raise RunCancelled("cancellation requested")


def resolve_max_items(options: FetchOptions, source_value: Optional[int] = None) -> int:
    if source_value is not None and source_value > 0:
        return source_value
    return max(1, options.max_items_per_run)


def resolve_max_detail(options: FetchOptions, source_value: Optional[int] = None) -> int:
    """Detail budget: the run budget, capped by the per-source limit when one is set."""
    run_budget = max(0, options.max_detail_fetch)
    if source_value is None:
        return run_budget
    return min(run_budget, max(0, source_value))


class SourceAdapter(ABC):
    """
    Base class for source adapters.

    An adapter turns one external job source into a lazy stream of
    CanonicalJobPosting records:
    1. Fetch listing pages through the shared SourceHTTPClient
    2. Parse them with a pure parser from pipeline/
    3. Optionally fetch detail pages within the detail budget
    4. Infer derived fields and build canonical postings

    Disabled or misconfigured adapters yield nothing.
    """

    kind: str = ""
    vendor_type: SourceType = SourceType.CAREERS_PAGE

    def __init__(self, name: str, client: Optional[SourceHTTPClient] = None):
        self.name = name
        self.client = client
        self.stats = AdapterStats()
        self.logger = logging.getLogger(f"{__name__}.{self.kind or name}")

    async def fetch(
        self,
        options: FetchOptions,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[CanonicalJobPosting]:
        """Stream postings for one run. Stats are reset on every call."""
        self.stats = AdapterStats()
        async for posting in self._fetch(options, cancel):
            yield posting

    @abstractmethod
    def _fetch(
        self,
        options: FetchOptions,
        cancel: Optional[asyncio.Event],
    ) -> AsyncIterator[CanonicalJobPosting]:
        """Async generator implementing the source-specific fetch."""

    async def _get_page(self, url: str, cancel: Optional[asyncio.Event], **kwargs) -> FetchResult:
        result = await self.client.fetch(url, self.name, cancel=cancel, **kwargs)
        if result.blocked:
            self.stats.blocked += 1
        return result

    async def _get_html(self, url: str, cancel: Optional[asyncio.Event]) -> Optional[str]:
        """Body of a GET, or None when the fetch failed or was blocked."""
        result = await self._get_page(url, cancel)
        if not result.is_success() or not result.body.strip():
            return None
        return result.body

    def build_posting(
        self,
        title: str,
        company: str,
        url: str,
        source_job_id: Optional[str],
        location_text: str,
        description: Optional[str],
        work_mode: WorkMode,
        tags: List[str],
        languages: Sequence[str],
        metadata: Dict[str, Any],
        employment_type: EmploymentType = EmploymentType.UNKNOWN,
        salary: Optional[SalaryRange] = None,
        posted_at: Optional[datetime] = None,
        location: Optional[LocationRef] = None,
        source_name: Optional[str] = None,
        vendor_type: Optional[SourceType] = None,
    ) -> CanonicalJobPosting:
        now = utcnow()
        location_text = location_text or ""
        return CanonicalJobPosting(
            source=SourceRef(
                name=source_name or self.name,
                vendor_type=vendor_type or self.vendor_type,
                url=url,
                source_job_id=source_job_id,
            ),
            title=title,
            company=CompanyRef(company),
            location_text=location_text,
            location=location,
            description=description or "",
            work_mode=work_mode,
            employment_type=employment_type,
            salary=salary,
            tags=list(tags),
            languages=list(languages),
            posted_at=posted_at,
            captured_at=now,
            last_seen_at=now,
            status=JobStatus.ACTIVE,
            dedupe=DedupeInfo(compute_fingerprint(company, title, location_text, work_mode)),
            metadata=metadata,
        )

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name}, vendor_type={self.vendor_type.value})>"
