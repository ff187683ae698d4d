"""
Vendor-embedded JSON parsing (Gupy career pages and similar).

Payloads are either a raw JSON document or an HTML page carrying the data in
a __NEXT_DATA__ / application/json script block.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup

from core.normalize import make_absolute
from .json_walk import first_date, first_string, iter_objects

logger = logging.getLogger(__name__)

EMBEDDED_JSON_TYPES = ("application/json", "application/ld+json")


@dataclass
class ParsedGupyJob:
    source_job_id: str
    url: str
    title: str
    location_text: str = ""
    description: Optional[str] = None
    posted_at: Optional[datetime] = None


def looks_like_json(payload: Optional[str]) -> bool:
    if not payload:
        return False
    stripped = payload.lstrip()
    return stripped[:1] in ("{", "[")


def extract_embedded_json(html: str) -> Iterator[str]:
    """JSON text from __NEXT_DATA__ first, then application/(ld+)json scripts."""
    soup = BeautifulSoup(html, "lxml")

    next_data = soup.find_all("script", id="__NEXT_DATA__")
    typed = [
        s for s in soup.find_all("script")
        if (s.get("type") or "").lower() in EMBEDDED_JSON_TYPES and s.get("id") != "__NEXT_DATA__"
    ]

    for script in next_data + typed:
        raw = (script.string or script.get_text() or "").strip()
        if looks_like_json(raw):
            yield raw


def parse_gupy_jobs(json_text: str, base_url: str) -> List[ParsedGupyJob]:
    """
    Deep-walk a Gupy JSON document collecting job-like objects.

    An object qualifies when it has an id, a title and a url. Raises
    json.JSONDecodeError on malformed input.
    """
    if not json_text or not json_text.strip():
        return []

    root = json.loads(json_text)
    jobs: List[ParsedGupyJob] = []
    seen = set()

    for obj in iter_objects(root):
        job_id = first_string(obj, "id", "jobId", "code", "slug", numbers=True)
        title = first_string(obj, "name", "title", "jobTitle")
        url = first_string(obj, "jobUrl", "url", "absoluteUrl")

        if not job_id or not job_id.strip() or not title or not title.strip() or not url or not url.strip():
            continue

        key = job_id.strip().lower()
        if key in seen:
            continue
        seen.add(key)

        jobs.append(ParsedGupyJob(
            source_job_id=job_id.strip(),
            url=make_absolute(url, base_url),
            title=title.strip(),
            location_text=first_string(obj, "location", "locationText", "city", "workplace") or "",
            description=first_string(obj, "description", "jobDescription"),
            posted_at=first_date(obj, "publishedAt", "createdAt", "datePublished"),
        ))

    return jobs


def _try_parse(json_text: str, base_url: str) -> List[ParsedGupyJob]:
    try:
        return parse_gupy_jobs(json_text, base_url)
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug(f"[gupy] Ignoring malformed JSON payload from {base_url}: {e}")
        return []


def parse_gupy_payload(payload: str, base_url: str) -> List[ParsedGupyJob]:
    """Jobs from a raw JSON payload or the first embedded block that yields any."""
    if looks_like_json(payload):
        return _try_parse(payload, base_url)

    for embedded in extract_embedded_json(payload):
        jobs = _try_parse(embedded, base_url)
        if jobs:
            return jobs
    return []
