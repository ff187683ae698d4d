"""
Workday CXS JSON parsing.

Listing endpoint: POST /wday/cxs/{tenant}/{site}/jobs -> {"jobPostings": [...]}
Detail endpoint:  GET  /wday/cxs/{tenant}/{site}/job/...
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

from core.errors import ParseError
from core.normalize import clean_html_text
from .json_walk import find_property, first_string, iter_objects, parse_date

logger = logging.getLogger(__name__)

NESTED_KEYS = ("name", "value", "label", "text")
DESCRIPTION_KEYS = ("jobDescription", "description", "jobDescriptionHtml")
ID_KEYS = ("id", "jobReqId", "jobRequisitionId", "requisitionId")


@dataclass
class WorkdayJobListItem:
    title: str
    source_job_id: str
    source_url: str
    external_path: Optional[str]
    location_text: str
    employment_type_text: Optional[str] = None
    posted_at: Optional[datetime] = None
    description: Optional[str] = None


def _load(json_text: str) -> Any:
    try:
        return json.loads(json_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Invalid Workday JSON: {e}")


def _string(obj: Any, *keys: str) -> Optional[str]:
    return first_string(obj, *keys, nested=NESTED_KEYS)


def _location_text(item: dict) -> str:
    text = _string(item, "locationsText", "location")
    if text and text.strip():
        return text.strip()

    locations = item.get("locations")
    if isinstance(locations, list):
        values = []
        for loc in locations:
            value = loc if isinstance(loc, str) else _string(loc, "name", "location")
            if value and value.strip():
                values.append(value.strip())
        if values:
            return " | ".join(values)

    bullets = item.get("bulletFields")
    if isinstance(bullets, list):
        for bullet in bullets:
            if isinstance(bullet, str) and bullet.strip() and ("," in bullet or "-" in bullet):
                return bullet.strip()

    return "Unknown"


def _last_path_segment(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    clean = value.split("?", 1)[0].rstrip("/")
    return clean.rsplit("/", 1)[-1]


def build_source_url(
    base_host: str,
    site_path: str,
    fallback_site_name: str,
    external_path: Optional[str],
    job_id: Optional[str],
) -> str:
    """Public job URL for a listing item."""
    if external_path and external_path.strip():
        if external_path.lower().startswith(("http://", "https://")):
            return external_path
        if external_path.startswith("/"):
            return f"https://{base_host}{external_path}"

    path = site_path.rstrip("/") if site_path and site_path.strip() else f"/en-US/{fallback_site_name}"
    jid = job_id.strip() if job_id and job_id.strip() else "unknown"
    return f"https://{base_host}{path}/job/{quote(jid, safe='')}"


def _resolve_job_id(item: dict, source_url: str, external_path: Optional[str]) -> str:
    job_id = _string(item, *ID_KEYS)
    if job_id and job_id.strip():
        return job_id.strip()

    from_path = _last_path_segment(external_path)
    if from_path:
        return from_path

    return _last_path_segment(source_url) or source_url


def parse_listing(json_text: str, base_host: str, site_path: str, fallback_site_name: str) -> List[WorkdayJobListItem]:
    """
    Listing items from a Workday jobs response.

    Raises ParseError when `json_text` is not valid JSON. A response without
    a jobPostings array yields no items.
    """
    root = _load(json_text)
    postings = find_property(root, "jobPostings")
    if not isinstance(postings, list):
        return []

    items = []
    for item in postings:
        if not isinstance(item, dict):
            continue

        title = _string(item, "title", "jobTitle")
        external_path = _string(item, "externalPath")
        source_url = build_source_url(
            base_host,
            site_path,
            fallback_site_name,
            external_path,
            _string(item, "id", "jobReqId", "requisitionId"),
        )
        job_id = _resolve_job_id(item, source_url, external_path)

        if not title or not title.strip() or not job_id:
            continue

        employment = _string(item, "timeType", "employmentType", "workerSubType")
        items.append(WorkdayJobListItem(
            title=title.strip(),
            source_job_id=job_id,
            source_url=source_url,
            external_path=external_path,
            location_text=_location_text(item),
            employment_type_text=employment.strip() if employment else None,
            posted_at=parse_date(_string(item, "postedOn", "postedOnDate", "postedDate", "postedDateTime")),
        ))

    return items


def parse_detail_description(json_text: str) -> str:
    """Longest cleaned description string anywhere in a detail response."""
    root = _load(json_text)
    best = ""
    for obj in iter_objects(root):
        for key in DESCRIPTION_KEYS:
            value = obj.get(key)
            if not isinstance(value, str):
                continue
            cleaned = clean_html_text(value)
            if len(cleaned) > len(best):
                best = cleaned
    return best


def build_detail_endpoint_path(tenant: str, site_name: str, external_path: Optional[str], job_id: Optional[str]) -> str:
    if external_path and external_path.strip():
        if external_path.lower().startswith("/wday/cxs/"):
            return external_path
        if external_path.lower().startswith("/job/"):
            return f"/wday/cxs/{tenant}/{site_name}{external_path}"

    jid = job_id.strip() if job_id and job_id.strip() else ""
    return f"/wday/cxs/{tenant}/{site_name}/job/{quote(jid, safe='')}"
