"""
Offline fixture adapter: reads sample_source_*.json files from a directory.

Each file holds one posting:
    {"source": "LinkedIn", "jobId": "...", "title": "...", "company": "...",
     "location": "...", "url": "...", "description": "...", "postedAt": "..."}
"""
import json
import asyncio
from pathlib import Path
from typing import AsyncIterator, List, Optional

from core.inference import infer_languages, infer_tags, infer_work_mode
from core.models import CanonicalJobPosting, FetchOptions, LocationRef, SourceType
from core.normalize import normalize
from pipeline.json_walk import parse_date
from .base import SourceAdapter, check_cancelled

FILE_PREFIX = "sample_source_"
REQUIRED_FIELDS = ("source", "title", "company", "url")
BRAZIL_NAMES = ("brazil", "brasil")
BRAZIL_STATE_CODES = ("sp", "pr")


def infer_location(location_text: Optional[str]) -> Optional[LocationRef]:
    if not location_text or not location_text.strip():
        return None
    normalized = normalize(location_text)
    tokens = normalized.split()
    is_brazil = any(name in normalized for name in BRAZIL_NAMES) or any(code in tokens for code in BRAZIL_STATE_CODES)
    return LocationRef(country="BR" if is_brazil else None)


class FixtureAdapter(SourceAdapter):
    kind = "fixtures"
    vendor_type = SourceType.FIXTURE

    def __init__(self, samples_path, client=None):
        super().__init__(name="Fixtures", client=client)
        self.samples_path = Path(samples_path) if samples_path else None

    def sample_files(self) -> List[Path]:
        if self.samples_path is None or not self.samples_path.is_dir():
            return []
        return sorted(
            p for p in self.samples_path.glob("*.json")
            if p.name.lower().startswith(FILE_PREFIX)
        )

    async def _fetch(self, options: FetchOptions, cancel: Optional[asyncio.Event]) -> AsyncIterator[CanonicalJobPosting]:
        if self.samples_path is None or not self.samples_path.is_dir():
            self.logger.warning(f"[{self.kind}] Samples path does not exist: {self.samples_path}")
            return

        for path in self.sample_files():
            check_cancelled(cancel)
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                self.stats.parse_errors += 1
                self.logger.warning(f"[{self.kind}] Skipping unreadable fixture {path.name}: {e}")
                continue

            if not isinstance(raw, dict) or any(not isinstance(raw.get(k), str) for k in REQUIRED_FIELDS):
                self.stats.parse_errors += 1
                self.logger.warning(f"[{self.kind}] Skipping fixture {path.name}: missing one of {REQUIRED_FIELDS}")
                continue

            yield self._to_posting(raw, path.name)

    def _to_posting(self, raw: dict, file_name: str) -> CanonicalJobPosting:
        source = raw["source"]
        location_text = raw.get("location") or ""
        description = raw.get("description") or ""
        posted_at = raw.get("postedAt")

        return self.build_posting(
            title=raw["title"],
            company=raw["company"],
            url=raw["url"],
            source_job_id=raw.get("jobId") if isinstance(raw.get("jobId"), str) else None,
            location_text=location_text,
            location=infer_location(location_text),
            description=description,
            work_mode=infer_work_mode(location_text),
            tags=infer_tags(raw["title"], description),
            languages=infer_languages(description, ("en",)),
            posted_at=parse_date(posted_at) if isinstance(posted_at, str) else None,
            source_name=source,
            vendor_type=SourceType.parse(source, SourceType.FIXTURE),
            metadata={
                "source": source,
                "fixtureFile": file_name,
                "raw": raw,
            },
        )
