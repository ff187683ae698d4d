"""
InfoJobs / Vagas listing parser.

Listing pages are parsed from three sources, merged in order:
1. __NEXT_DATA__ embedded JSON
2. JSON-LD JobPosting nodes
3. Job anchors, with company/location/salary recovered from nearby labelled text

Only URLs matching the InfoJobs job-page shape are kept.
"""

import re
import json
import logging
from typing import Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from core.models import ParsedSourceJob
from core.normalize import clean_html_text, make_absolute, url_hash_id
from .json_walk import first_date, first_string, iter_objects
from .jsonld import JSONLDParser, is_job_posting, iter_jsonld_blocks

logger = logging.getLogger(__name__)

JOB_URL_RE = re.compile(r"^https://www\.infojobs\.com\.br/vaga-de-.*__\d+\.aspx$", re.IGNORECASE)
JOB_ID_RE = re.compile(r"__(?P<id>\d+)\.aspx$", re.IGNORECASE)
QUERY_ID_RE = re.compile(r"[?&](id|iv|jobid)=(?P<id>\d+)", re.IGNORECASE)
PATH_ID_RE = re.compile(r"(?P<id>\d{5,})")
ANCHOR_RE = re.compile(r'<a[^>]*href="(?P<href>[^"]+)"[^>]*>(?P<text>.*?)</a>', re.IGNORECASE | re.DOTALL)

COMPANY_LABEL_RE = re.compile(r"(empresa|company)[^<:\n]{0,40}[:\-]?\s*(?P<v>[A-Za-z0-9 .&\-]{2,80})", re.IGNORECASE | re.DOTALL)
LOCATION_LABEL_RE = re.compile(r"(local|location|cidade)[^<:\n]{0,40}[:\-]?\s*(?P<v>[A-Za-z0-9 .,/\-]{2,120})", re.IGNORECASE | re.DOTALL)
SALARY_LABEL_RE = re.compile(r"(salario|salary)[^<:\n]{0,40}[:\-]?\s*(?P<v>[^<\n]{2,80})", re.IGNORECASE | re.DOTALL)

ANCHOR_WINDOW_SIZE = 1200
NESTED_KEYS = ("name", "value", "text")
MIN_TITLE_LENGTH = 6

_jsonld = JSONLDParser()


def is_valid_job_url(url: Optional[str]) -> bool:
    return bool(url and url.strip()) and JOB_URL_RE.match(url) is not None


def extract_job_id(url: Optional[str]) -> Optional[str]:
    """Numeric id from an InfoJobs job URL (`...__123456.aspx`)."""
    if not is_valid_job_url(url):
        return None
    match = JOB_ID_RE.search(url)
    return match.group("id") if match else None


def build_stable_source_job_id(source_job_id: Optional[str], url: str) -> str:
    """
    Stable job id for a listing URL.

    Priority: InfoJobs slug id, declared id, ?id=/iv=/jobid= query value,
    first 5+ digit run in the URL, url hash.
    """
    by_slug = extract_job_id(url)
    if by_slug:
        return by_slug

    if source_job_id and source_job_id.strip():
        return source_job_id

    by_query = QUERY_ID_RE.search(url or "")
    if by_query:
        return by_query.group("id")

    by_path = PATH_ID_RE.search(url or "")
    if by_path:
        return by_path.group("id")

    return url_hash_id(url or "")


def passes_quality_gate(job: ParsedSourceJob) -> bool:
    if len((job.title or "").strip()) < MIN_TITLE_LENGTH:
        return False
    if (job.company or "").strip().lower() == "unknown":
        return False
    return bool(job.location_text and job.location_text.strip())


def _extract_window(html: str, index: int, size: int) -> str:
    start = max(0, index - size // 2)
    return html[start:start + size]


def _extract_label(window: str, pattern: re.Pattern) -> Optional[str]:
    match = pattern.search(window)
    return clean_html_text(match.group("v")) if match else None


def _salary_text(node: Dict) -> Optional[str]:
    """Readable salary text from a JSON-LD baseSalary (string or MonetaryAmount)."""
    salary = node.get("baseSalary")
    if isinstance(salary, str):
        return salary
    if not isinstance(salary, dict):
        return None

    value = salary.get("value")
    numbers = []
    unit = None
    if isinstance(value, dict):
        unit = value.get("unitText")
        for key in ("minValue", "maxValue", "value"):
            if isinstance(value.get(key), (int, float)):
                numbers.append(value[key])
    elif isinstance(value, (int, float)):
        numbers.append(value)

    if not numbers:
        return first_string(salary, "value", nested=NESTED_KEYS)

    def fmt(n):
        return str(int(n)) if float(n).is_integer() else f"{n:.2f}".replace(".", ",")

    currency = salary.get("currency") or ""
    prefix = "R$" if currency.upper() == "BRL" else currency
    text = " - ".join(fmt(n) for n in numbers[:2])
    if isinstance(unit, str) and unit.upper() == "MONTH":
        text += " por mes"
    return f"{prefix} {text}".strip()


class InfoJobsListParser:
    """Listing-page parser for InfoJobs-shaped sites"""

    def parse(self, html: str, search_url: str) -> List[ParsedSourceJob]:
        if not html or not html.strip():
            return []

        soup = BeautifulSoup(html, "lxml")
        candidates: List[ParsedSourceJob] = []
        candidates.extend(self._from_next_data(soup, search_url))
        candidates.extend(self._from_jsonld(soup, search_url))
        candidates.extend(self._from_anchors(html, search_url))

        seen = set()
        jobs = []
        for job in candidates:
            if not job.title or not job.title.strip() or not job.url:
                continue
            if not is_valid_job_url(job.url):
                continue
            key = job.url.lower()
            if key in seen:
                continue
            seen.add(key)
            jobs.append(job)
        return jobs

    def _from_next_data(self, soup: BeautifulSoup, base_url: str) -> Iterator[ParsedSourceJob]:
        script = soup.find("script", id="__NEXT_DATA__")
        if script is None:
            return
        raw = script.string or script.get_text()
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug(f"[infojobs] Invalid __NEXT_DATA__ payload: {e}")
            return

        for obj in iter_objects(data):
            title = first_string(obj, "title", "jobTitle", "titulo", nested=NESTED_KEYS)
            url = first_string(obj, "url", "jobUrl", "link", nested=NESTED_KEYS)
            if not title or not title.strip() or not url or not url.strip():
                continue

            absolute_url = make_absolute(url, base_url)
            if not is_valid_job_url(absolute_url):
                continue

            company = clean_html_text(first_string(obj, "company", "companyName", "employer", "nomeEmpresa", nested=NESTED_KEYS))
            yield ParsedSourceJob(
                title=clean_html_text(title),
                url=absolute_url,
                company=company or "Unknown",
                location_text=clean_html_text(first_string(obj, "location", "locationText", "cidade", "localizacao", nested=NESTED_KEYS)),
                salary_text=first_string(obj, "salary", "salaryText", "remuneration", nested=NESTED_KEYS),
                work_mode_text=first_string(obj, "workMode", "modality", "modeloTrabalho", nested=NESTED_KEYS),
                source_job_id=first_string(obj, "jobId", "id", "sourceJobId", nested=NESTED_KEYS, numbers=True),
                posted_at=first_date(obj, "postedAt", "publishedAt", "publicationDate"),
            )

    def _from_jsonld(self, soup: BeautifulSoup, base_url: str) -> Iterator[ParsedSourceJob]:
        for block in iter_jsonld_blocks(soup):
            for node in iter_objects(block):
                if not is_job_posting(node):
                    continue
                title = first_string(node, "title", nested=NESTED_KEYS)
                url = first_string(node, "url", nested=NESTED_KEYS)
                if not title or not title.strip() or not url or not url.strip():
                    continue

                absolute_url = make_absolute(url, base_url)
                if not is_valid_job_url(absolute_url):
                    continue

                yield ParsedSourceJob(
                    title=clean_html_text(title),
                    url=absolute_url,
                    company=_jsonld.extract_company(node),
                    location_text=_jsonld.extract_location(node),
                    salary_text=_salary_text(node),
                    posted_at=first_date(node, "datePosted"),
                )

    def _from_anchors(self, html: str, base_url: str) -> Iterator[ParsedSourceJob]:
        for match in ANCHOR_RE.finditer(html):
            href = match.group("href")
            title = clean_html_text(match.group("text"))
            if not href or not title:
                continue

            absolute_url = make_absolute(href, base_url)
            if not is_valid_job_url(absolute_url):
                continue

            window = _extract_window(html, match.start(), ANCHOR_WINDOW_SIZE)
            yield ParsedSourceJob(
                title=title,
                url=absolute_url,
                company=_extract_label(window, COMPANY_LABEL_RE) or "Unknown",
                location_text=_extract_label(window, LOCATION_LABEL_RE) or "",
                salary_text=_extract_label(window, SALARY_LABEL_RE),
                source_job_id=extract_job_id(absolute_url),
            )


_parser = InfoJobsListParser()


def parse_list(html: str, search_url: str) -> List[ParsedSourceJob]:
    return _parser.parse(html, search_url)
