"""
Corporate careers adapter.

Strategy order for the start page:
1. JSON-LD JobPosting blocks (detail page fetched for empty descriptions)
2. TOTVS anchor heuristic, for TOTVS sources only
3. Known JS-rendered sites are skipped
"""
import asyncio
from typing import AsyncIterator, Optional

from core.inference import infer_employment_type, infer_languages, infer_tags, infer_work_mode
from core.models import CanonicalJobPosting, FetchOptions, ParsedSourceJob, SourceType
from pipeline.heuristics import parse_detail_description, parse_totvs_list
from pipeline.jsonld import ParsedJsonLdJob, parse_job_postings
from .base import SourceAdapter, check_cancelled, resolve_max_detail, resolve_max_items

# Career sites that render their job lists client-side
REQUIRES_JS_MARKERS = ("thoughtworks", "redhat", "red hat", "accenture")
DEFAULT_LANGUAGES = ("pt-BR",)


class CorporateCareersAdapter(SourceAdapter):
    kind = "corporate_careers"

    def __init__(self, config, client):
        super().__init__(name=config.name, client=client)
        self.config = config
        self.vendor_type = SourceType.parse(config.type, SourceType.CORPORATE_CAREERS)

    def is_totvs(self) -> bool:
        return "totvs" in self.name.lower() or "totvs" in (self.config.start_url or "").lower()

    def requires_js(self) -> bool:
        name = self.name.lower()
        return any(marker in name for marker in REQUIRES_JS_MARKERS)

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if not self.config.enabled:
            self.logger.info(f"[{self.kind}] Source {self.name} disabled by configuration")
            return

        start_url = self.config.start_url
        if not start_url or not start_url.strip():
            self.logger.warning(f"[{self.kind}] Source {self.name} has no start_url configured")
            return

        list_html = await self._get_html(start_url, cancel)
        if list_html is None:
            return

        max_items = resolve_max_items(options, self.config.max_items_per_run)
        detail_budget = resolve_max_detail(options, self.config.max_detail_fetch)

        items = parse_job_postings(list_html, start_url)[:max_items]
        if items:
            for item in items:
                check_cancelled(cancel)
                description = item.description or ""
                if not description.strip() and detail_budget > 0:
                    description = await self._fetch_detail_description(item.url, cancel)
                    detail_budget -= 1
                item.description = description
                yield self._from_jsonld(item)
            return

        if self.is_totvs():
            jobs = parse_totvs_list(list_html, start_url)[:max_items]
            if not jobs:
                self.logger.info(f"[{self.kind}] {self.name} has no parsed jobs")
                return
            for job in jobs:
                check_cancelled(cancel)
                description = ""
                if detail_budget > 0:
                    detail_html = await self._get_html(job.url, cancel)
                    if detail_html:
                        description = parse_detail_description(detail_html)
                        self.stats.detail_fetched += 1
                    detail_budget -= 1
                yield self._from_anchor(job, description)
            return

        if self.requires_js():
            self.logger.info(f"[{self.kind}] {self.name} requires JS - skipped")
            return

        self.logger.info(f"[{self.kind}] {self.name} has no JobPosting json-ld (no json-ld)")

    async def _fetch_detail_description(self, url: str, cancel: Optional[asyncio.Event]) -> str:
        detail_html = await self._get_html(url, cancel)
        if not detail_html:
            return ""
        self.stats.detail_fetched += 1

        detail = parse_job_postings(detail_html, url)
        if detail and detail[0].description:
            return detail[0].description
        return parse_detail_description(detail_html)

    def _metadata(self, parser: str):
        return {
            "source": self.name,
            "startUrl": self.config.start_url,
            "parser": parser,
        }

    def _from_jsonld(self, item: ParsedJsonLdJob) -> CanonicalJobPosting:
        description = item.description or ""
        work_mode = infer_work_mode(f"{item.work_mode_hint or ''} {item.location_text} {description}")
        return self.build_posting(
            title=item.title,
            company=item.company or self.name,
            url=item.url,
            source_job_id=item.source_job_id,
            location_text=item.location_text,
            description=description,
            work_mode=work_mode,
            employment_type=infer_employment_type(item.employment_type, description),
            tags=infer_tags(item.title, description),
            languages=infer_languages(description, DEFAULT_LANGUAGES),
            posted_at=item.posted_at,
            metadata=self._metadata("json-ld"),
        )

    def _from_anchor(self, job: ParsedSourceJob, description: str) -> CanonicalJobPosting:
        work_mode = infer_work_mode(f"{job.work_mode_text or ''} {job.location_text} {description}")
        return self.build_posting(
            title=job.title,
            company=job.company or self.name,
            url=job.url,
            source_job_id=job.source_job_id,
            location_text=job.location_text,
            description=description,
            work_mode=work_mode,
            tags=infer_tags(job.title, description),
            languages=infer_languages(description, DEFAULT_LANGUAGES),
            posted_at=job.posted_at,
            metadata=self._metadata("totvs-html"),
        )
