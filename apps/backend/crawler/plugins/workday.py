"""
Workday (CXS JSON API) adapter.

Pages through POST /wday/cxs/{tenant}/{site}/jobs. A blocked or
unauthorized listing response ends pagination for the run; detail
descriptions are fetched from the per-job CXS endpoint within budget.
"""
import asyncio
from typing import AsyncIterator, Optional

from core.errors import ParseError
from core.inference import infer_tags, infer_work_mode, infer_workday_employment_type
from core.models import CanonicalJobPosting, FetchOptions, SourceType
from pipeline.workday import WorkdayJobListItem, build_detail_endpoint_path, parse_detail_description, parse_listing
from .base import SourceAdapter, check_cancelled, resolve_max_detail

JSON_ACCEPT = "application/json"
LANGUAGES = ("pt-BR", "en-US")


class WorkdayAdapter(SourceAdapter):
    kind = "workday"
    vendor_type = SourceType.WORKDAY

    def __init__(self, config, client):
        super().__init__(name=config.name or "AccentureWorkday", client=client)
        self.config = config
        self.company = config.company or "Accenture"

    def resolve_detail_budget(self, options: FetchOptions) -> int:
        return resolve_max_detail(options, self.config.max_detail_fetch)

    def _headers(self):
        if self.config.user_agent and self.config.user_agent.strip():
            return {"User-Agent": self.config.user_agent}
        return None

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"https://{self.config.base_host.strip()}{path}"

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if not self.config.enabled:
            self.logger.info(f"[{self.kind}] Source {self.name} disabled by configuration")
            return

        if not all(v and v.strip() for v in (self.config.base_host, self.config.tenant, self.config.site_name)):
            self.logger.warning(f"[{self.kind}] Source {self.name} missing base_host/tenant/site_name")
            return

        tenant = self.config.tenant.strip()
        site_name = self.config.site_name.strip()
        page_size = max(1, self.config.page_size)
        max_pages = max(1, self.config.max_pages_per_run)
        max_items = max(1, options.max_items_per_run)
        detail_budget = self.resolve_detail_budget(options)
        list_path = f"/wday/cxs/{tenant}/{site_name}/jobs"
        list_url = self._url(list_path)

        fetched = 0
        parsed = 0

        for page in range(1, max_pages + 1):
            if parsed >= max_items:
                break

            body = {
                "appliedFacets": {},
                "limit": page_size,
                "offset": (page - 1) * page_size,
                "searchText": "",
            }
            result = await self._get_page(
                list_url,
                cancel,
                method="POST",
                json_body=body,
                accept=JSON_ACCEPT,
                headers=self._headers(),
                check_markers=False,
            )
            if result.blocked:
                self.logger.warning(
                    f"[{self.kind}] {self.name} blocked/unauthorized at Workday endpoint {list_path} "
                    f"(status={result.status_code or 'n/a'})"
                )
                break

            if not result.is_success() or not result.body.strip():
                self.stats.parse_errors += 1
                continue

            try:
                jobs = parse_listing(result.body, self.config.base_host.strip(), self.config.site_path, site_name)
            except ParseError as e:
                self.stats.parse_errors += 1
                self.logger.warning(f"[{self.kind}] Failed to parse Workday listing for {self.name} page={page}: {e}")
                continue

            if not jobs:
                break

            fetched += len(jobs)

            for item in jobs:
                check_cancelled(cancel)
                if parsed >= max_items:
                    break

                description = item.description or ""
                if not description.strip() and detail_budget > 0:
                    description = await self._fetch_detail(item, tenant, site_name, cancel)
                    detail_budget -= 1

                parsed += 1
                yield self._to_posting(item, description, list_path)

        self.logger.info(
            f"[{self.kind}] {self.name} counters: fetched={fetched} parsed={parsed} "
            f"detail_fetched={self.stats.detail_fetched} errors={self.stats.parse_errors}"
        )

    async def _fetch_detail(self, item: WorkdayJobListItem, tenant: str, site_name: str, cancel: Optional[asyncio.Event]) -> str:
        detail_path = build_detail_endpoint_path(tenant, site_name, item.external_path, item.source_job_id)
        result = await self._get_page(
            self._url(detail_path),
            cancel,
            accept=JSON_ACCEPT,
            headers=self._headers(),
            check_markers=False,
        )
        if result.blocked:
            self.logger.warning(
                f"[{self.kind}] {self.name} blocked/unauthorized at Workday detail "
                f"(status={result.status_code or 'n/a'})"
            )
            return ""

        if not result.is_success() or not result.body.strip():
            self.stats.parse_errors += 1
            return ""

        try:
            description = parse_detail_description(result.body)
        except ParseError as e:
            self.stats.parse_errors += 1
            self.logger.warning(f"[{self.kind}] Failed to parse Workday detail for {item.source_job_id}: {e}")
            return ""

        self.stats.detail_fetched += 1
        return description

    def _to_posting(self, item: WorkdayJobListItem, description: str, list_path: str) -> CanonicalJobPosting:
        work_mode = infer_work_mode(f"{item.location_text} {description}")
        return self.build_posting(
            title=item.title,
            company=self.company,
            url=item.source_url,
            source_job_id=item.source_job_id,
            location_text=item.location_text,
            description=description,
            work_mode=work_mode,
            employment_type=infer_workday_employment_type(item.employment_type_text),
            tags=infer_tags(item.title, description),
            languages=LANGUAGES,
            posted_at=item.posted_at,
            metadata={
                "source": self.name,
                "sourceType": self.vendor_type.value,
                "tenant": self.config.tenant,
                "siteName": self.config.site_name,
                "sitePath": self.config.site_path,
                "listEndpointPath": list_path,
            },
        )
