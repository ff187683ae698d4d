"""
Generic JSON-LD adapter: one page carrying schema.org JobPosting blocks.
"""
import asyncio
from typing import AsyncIterator, Optional

from core.inference import infer_employment_type, infer_languages, infer_tags, infer_work_mode
from core.models import CanonicalJobPosting, FetchOptions, SourceType
from pipeline.jsonld import ParsedJsonLdJob, parse_job_postings
from .base import SourceAdapter, check_cancelled, resolve_max_items


class JsonLdAdapter(SourceAdapter):
    kind = "json_ld"
    vendor_type = SourceType.JSONLD

    def __init__(self, config, client):
        super().__init__(name=config.name, client=client)
        self.config = config

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if not self.config.enabled:
            self.logger.info(f"[{self.kind}] Source {self.name} disabled by configuration")
            return

        start_url = self.config.start_url
        if not start_url or not start_url.strip():
            self.logger.warning(f"[{self.kind}] Source {self.name} has no start_url configured")
            return

        html = await self._get_html(start_url, cancel)
        if html is None:
            return

        items = parse_job_postings(html, start_url)[:resolve_max_items(options, self.config.max_items_per_run)]
        if not items:
            self.logger.info(f"[{self.kind}] {self.name} has no JobPosting json-ld (no json-ld)")
            return

        for item in items:
            check_cancelled(cancel)
            yield self._to_posting(item)

    def _to_posting(self, item: ParsedJsonLdJob) -> CanonicalJobPosting:
        description = item.description or ""
        work_mode = infer_work_mode(f"{item.work_mode_hint or ''} {item.location_text} {description}")
        return self.build_posting(
            title=item.title,
            company=item.company,
            url=item.url,
            source_job_id=item.source_job_id,
            location_text=item.location_text,
            description=description,
            work_mode=work_mode,
            employment_type=infer_employment_type(item.employment_type, description),
            tags=infer_tags(item.title, description),
            languages=infer_languages(description),
            posted_at=item.posted_at,
            metadata={
                "source": self.name,
                "startUrl": self.config.start_url,
                "parser": "json-ld",
            },
        )
