"""
JSON-LD parser.

Extracts Schema.org JobPosting nodes from <script type="application/ld+json">
blocks into ParsedJsonLdJob records.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from bs4 import BeautifulSoup

from core.normalize import clean_html_text, make_absolute, url_hash_id
from .json_walk import first_date, first_string, iter_objects

logger = logging.getLogger(__name__)

NESTED_KEYS = ("name", "value", "@id")


@dataclass
class ParsedJsonLdJob:
    title: str
    url: str
    company: str
    location_text: str
    source_job_id: str
    description: Optional[str] = None
    posted_at: Optional[datetime] = None
    employment_type: Optional[str] = None
    work_mode_hint: Optional[str] = None


def _soup(html: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(html, BeautifulSoup):
        return html
    return BeautifulSoup(html, "lxml")


def iter_jsonld_blocks(html: Union[str, BeautifulSoup]) -> Iterator[Any]:
    """Decoded JSON of every ld+json script; malformed blocks are skipped."""
    soup = _soup(html)
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug(f"[jsonld] Failed to parse JSON-LD block: {e}")


def is_job_posting(item: Dict) -> bool:
    item_type = item.get("@type")
    if isinstance(item_type, str):
        return item_type.lower() == "jobposting"
    if isinstance(item_type, list):
        return any(isinstance(t, str) and t.lower() == "jobposting" for t in item_type)
    return False


class JSONLDParser:
    """Parses JobPosting nodes from a listing or detail page."""

    def parse(self, html: str, start_url: str) -> List[ParsedJsonLdJob]:
        if not html or not html.strip():
            return []

        jobs: List[ParsedJsonLdJob] = []
        for block in iter_jsonld_blocks(html):
            for node in iter_objects(block):
                if not is_job_posting(node):
                    continue
                job = self._extract_job_posting(node, start_url)
                if job is not None:
                    jobs.append(job)

        seen = set()
        unique = []
        for job in jobs:
            key = job.source_job_id.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(job)
        return unique

    def _extract_job_posting(self, node: Dict, start_url: str) -> Optional[ParsedJsonLdJob]:
        title = first_string(node, "title", nested=NESTED_KEYS)
        url = first_string(node, "url", nested=NESTED_KEYS) or start_url
        absolute_url = make_absolute(url, start_url)

        if not title or not title.strip() or not absolute_url:
            return None

        return ParsedJsonLdJob(
            title=clean_html_text(title),
            url=absolute_url,
            company=self.extract_company(node),
            location_text=self.extract_location(node),
            source_job_id=self._resolve_source_job_id(node, absolute_url),
            description=first_string(node, "description", nested=NESTED_KEYS),
            posted_at=first_date(node, "datePosted", "validFrom"),
            employment_type=self._employment_type(node),
            work_mode_hint=first_string(node, "jobLocationType", nested=NESTED_KEYS),
        )

    def _employment_type(self, node: Dict) -> Optional[str]:
        value = node.get("employmentType")
        # schema.org allows a list of types
        if isinstance(value, list):
            return " ".join(v for v in value if isinstance(v, str)) or None
        return first_string(node, "employmentType", nested=NESTED_KEYS)

    def _resolve_source_job_id(self, node: Dict, url: str) -> str:
        identifier = node.get("identifier")
        if isinstance(identifier, str) and identifier.strip():
            return identifier
        if isinstance(identifier, dict):
            value = first_string(identifier, "value", "name", nested=NESTED_KEYS, numbers=True)
            if value and value.strip():
                return value
        return url_hash_id(url)

    def extract_company(self, node: Dict) -> str:
        hiring = node.get("hiringOrganization")
        if isinstance(hiring, str) and hiring.strip():
            return clean_html_text(hiring)
        name = first_string(hiring, "name", "legalName", nested=NESTED_KEYS)
        if name and name.strip():
            return clean_html_text(name)
        return "Unknown"

    def extract_location(self, node: Dict) -> str:
        location = node.get("jobLocation")
        text = self._location_text(location)
        if text:
            return text

        requirements = node.get("applicantLocationRequirements")
        name = first_string(requirements, "name", nested=NESTED_KEYS)
        if name and name.strip():
            return clean_html_text(name)
        return ""

    def _location_text(self, location: Any) -> str:
        if isinstance(location, list):
            values = [self._location_text(item) for item in location]
            return " | ".join(v for v in values if v)

        if not isinstance(location, dict):
            return ""

        address = location.get("address")
        if isinstance(address, dict):
            parts = [
                first_string(address, "addressLocality", nested=NESTED_KEYS),
                first_string(address, "addressRegion", nested=NESTED_KEYS),
                first_string(address, "addressCountry", nested=NESTED_KEYS),
            ]
            parts = [clean_html_text(p) for p in parts if p and p.strip()]
            if parts:
                return ", ".join(parts)

        name = first_string(location, "name", nested=NESTED_KEYS)
        if name and name.strip():
            return clean_html_text(name)
        return ""


_parser = JSONLDParser()


def parse_job_postings(html: str, start_url: str) -> List[ParsedJsonLdJob]:
    """JobPosting nodes from `html`, deduplicated by source job id."""
    return _parser.parse(html, start_url)
