"""
InfoJobs listing adapter.

Single search page; items without a usable title, company or location are
dropped by the quality gate before any detail fetch.
"""
import asyncio
from typing import AsyncIterator, Optional

from core.inference import infer_tags, infer_work_mode
from core.models import CanonicalJobPosting, FetchOptions, ParsedSourceJob, SourceType
from pipeline.heuristics import parse_detail_description, parse_salary
from pipeline.infojobs import build_stable_source_job_id, extract_job_id, parse_list, passes_quality_gate
from .base import SourceAdapter, check_cancelled


class InfoJobsAdapter(SourceAdapter):
    """Adapter for infojobs.com.br search pages"""

    kind = "infojobs"
    vendor_type = SourceType.INFOJOBS
    default_name = "InfoJobs"
    company_fallback: Optional[str] = None
    apply_quality_gate = True

    def __init__(self, config, client):
        super().__init__(name=self.default_name, client=client)
        self.config = config

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if not self.config.enabled:
            self.logger.info(f"[{self.kind}] Source {self.name} disabled by configuration")
            return

        search_url = self.config.search_url
        if not search_url or not search_url.strip():
            self.logger.warning(f"[{self.kind}] Source {self.name} has no search_url configured")
            return

        list_html = await self._get_html(search_url, cancel)
        if list_html is None:
            return

        items = parse_list(list_html, search_url)[:max(1, options.max_items_per_run)]
        if not items:
            self.logger.warning(f"[{self.kind}] {self.name} returned 0 parsed jobs for {search_url}")
            return

        detail_budget = max(0, options.max_detail_fetch)

        for item in items:
            check_cancelled(cancel)

            if self.apply_quality_gate and not passes_quality_gate(item):
                self.stats.skipped += 1
                self.logger.warning(
                    f"[{self.kind}] Dropped invalid job: title={item.title!r} company={item.company!r} "
                    f"location={item.location_text!r} url={item.url}"
                )
                continue

            if not (item.description and item.description.strip()) and detail_budget > 0:
                detail_html = await self._get_html(item.url, cancel)
                if detail_html:
                    item.description = parse_detail_description(detail_html)
                    self.stats.detail_fetched += 1
                detail_budget -= 1

            yield self._to_posting(item, search_url)

        if self.stats.skipped:
            self.logger.info(f"[{self.kind}] Quality gate: skipped_invalid={self.stats.skipped}")

    def _company(self, item: ParsedSourceJob) -> str:
        company = (item.company or "").strip()
        if self.company_fallback and (not company or company.lower() == "unknown"):
            return self.company_fallback
        return company or "Unknown"

    def _to_posting(self, item: ParsedSourceJob, search_url: str) -> CanonicalJobPosting:
        source_job_id = extract_job_id(item.url) or build_stable_source_job_id(item.source_job_id, item.url)
        description = item.description or ""
        work_mode = infer_work_mode(f"{item.work_mode_text or ''} {item.location_text} {description}")

        return self.build_posting(
            title=item.title,
            company=self._company(item),
            url=item.url,
            source_job_id=source_job_id,
            location_text=item.location_text,
            description=description,
            work_mode=work_mode,
            salary=parse_salary(item.salary_text),
            tags=infer_tags(item.title, description),
            languages=["pt-BR"],
            posted_at=item.posted_at,
            metadata={
                "source": self.name,
                "salaryText": item.salary_text or "",
                "searchUrl": search_url,
            },
        )
