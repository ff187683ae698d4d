"""
Gupy company career-page adapter.

Gupy pages expose their job list either as a JSON document or embedded in
the HTML, at one of several URLs depending on the tenant setup. Candidates
are tried in order and the first one that yields jobs wins.
"""
import asyncio
from typing import AsyncIterator, List, Optional
from urllib.parse import urlsplit, urlunsplit

from core.inference import infer_tags, infer_work_mode
from core.models import CanonicalJobPosting, FetchOptions, SourceType
from pipeline.embedded_json import ParsedGupyJob, parse_gupy_payload
from .base import SourceAdapter, check_cancelled, resolve_max_items


def _normalize_url(url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None
    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, parts.fragment))


def _replace_path(url: str, path: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def build_endpoint_candidates(company_base_url: str) -> List[str]:
    """
    Ordered URLs to try for a Gupy company page.

    Non-gupy.io hosts only get the configured URL.
    """
    candidates: List[str] = []
    seen = set()

    def add(url: Optional[str]):
        normalized = _normalize_url(url)
        if normalized is None or normalized.lower() in seen:
            return
        seen.add(normalized.lower())
        candidates.append(normalized)

    add(company_base_url)
    base = _normalize_url(company_base_url)
    if base is None:
        return candidates

    parts = urlsplit(base)
    if "gupy.io" not in parts.netloc.lower():
        return candidates

    add(_replace_path(base, "/jobs.json"))
    add(_replace_path(base, "/jobs"))
    add(_replace_path(base, "/"))

    path = parts.path.rstrip("/")
    if path:
        if not path.lower().endswith(".json"):
            add(_replace_path(base, path + ".json"))
        if not path.lower().endswith("/jobs"):
            add(_replace_path(base, path + "/jobs"))
            add(_replace_path(base, path + "/jobs.json"))
        else:
            add(_replace_path(base, path + ".json"))

    return candidates


class GupyAdapter(SourceAdapter):
    """Adapter for <company>.gupy.io career pages"""

    kind = "gupy"
    vendor_type = SourceType.GUPY

    def __init__(self, config, client):
        super().__init__(name=config.name, client=client)
        self.config = config

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if not self.config.enabled:
            self.logger.info(f"[{self.kind}] Source {self.name} disabled by configuration")
            return

        base_url = self.config.company_base_url
        if not base_url or not base_url.strip():
            self.logger.warning(f"[{self.kind}] Source {self.name} has no company_base_url configured")
            return

        jobs: List[ParsedGupyJob] = []
        selected = None
        for endpoint in build_endpoint_candidates(base_url):
            payload = await self._get_html(endpoint, cancel)
            if payload is None:
                continue
            jobs = parse_gupy_payload(payload, endpoint)
            if jobs:
                selected = endpoint
                break

        if not jobs:
            self.logger.info(f"[{self.kind}] {self.name} returned no jobs from any candidate endpoint (base={base_url})")
            return

        if selected.lower() != base_url.strip().lower():
            self.logger.info(f"[{self.kind}] {self.name} resolved endpoint automatically: base={base_url} selected={selected}")

        for item in jobs[:resolve_max_items(options, self.config.max_items_per_run)]:
            check_cancelled(cancel)
            yield self._to_posting(item, selected)

    def _to_posting(self, item: ParsedGupyJob, endpoint: str) -> CanonicalJobPosting:
        description = item.description or ""
        work_mode = infer_work_mode(f"{item.location_text} {description}")
        return self.build_posting(
            title=item.title,
            company=self.name,
            url=item.url,
            source_job_id=item.source_job_id,
            location_text=item.location_text,
            description=description,
            work_mode=work_mode,
            tags=infer_tags(item.title, description),
            languages=["pt-BR"],
            posted_at=item.posted_at,
            metadata={
                "source": self.name,
                "companyBaseUrl": self.config.company_base_url,
                "resolvedEndpoint": endpoint,
                "parser": "gupy-json",
            },
        )
