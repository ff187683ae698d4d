"""
Heuristic HTML extraction.

Used when a page carries no structured data:
- detail-page description sections
- salary text -> SalaryRange
- corporate (TOTVS-style) job anchors with trailing context
"""

import re
import logging
from typing import List, Optional

from core.models import ParsedSourceJob, SalaryRange
from core.normalize import clean_html_text, make_absolute, normalize
from .infojobs import build_stable_source_job_id

logger = logging.getLogger(__name__)

SCRIPT_RE = re.compile(r"<script.*?</script>", re.IGNORECASE | re.DOTALL)
DESCRIPTION_SECTION_RE = re.compile(
    r"<(section|div)[^>]*(description|descricao|requirements|responsabilidades)[^>]*>(?P<body>.*?)</(section|div)>",
    re.IGNORECASE | re.DOTALL,
)
DESCRIPTION_KEYWORDS = (
    "job description",
    "descricao da vaga",
    "responsabilidades",
    "requirements",
    "requisitos",
)

SALARY_NUMBER_RE = re.compile(r"\d+[\d.,]*")
PT_BR_NUMBER_RE = re.compile(r"\d+(\.\d+)*(,\d+)?")
EN_NUMBER_RE = re.compile(r"\d+(,\d+)*(\.\d+)?")

# Tail is a lookahead so neighbouring anchors are still matched
JOB_ANCHOR_RE = re.compile(
    r'<a[^>]*href="(?P<href>[^"]+)"[^>]*>(?P<title>.*?)</a>(?=(?P<tail>.{0,600}))',
    re.IGNORECASE | re.DOTALL,
)
CORPORATE_LOCATION_RE = re.compile(
    r"(?P<loc>(remote|remoto|hybrid|hibrido|híbrido|onsite|presencial|[A-Za-zÀ-ÿ ]{2,40}\s?,\s?[A-Z]{2}))",
    re.IGNORECASE,
)
JOB_LINK_MARKERS = ("/job/", "/jobs/", "oportunidade", "vaga")
MIN_CORPORATE_TITLE_LENGTH = 4


def parse_detail_description(html: str) -> str:
    """
    Description text from a job detail page.

    Prefers a section/div whose attributes mention description/requirements
    when the page text has description keywords; otherwise the whole page text.
    """
    if not html:
        return ""

    no_script = SCRIPT_RE.sub(" ", html)
    normalized = normalize(no_script)
    if not any(keyword in normalized for keyword in DESCRIPTION_KEYWORDS):
        return clean_html_text(no_script)

    section = DESCRIPTION_SECTION_RE.search(no_script)
    if section:
        return clean_html_text(section.group("body"))
    return clean_html_text(no_script)


def _parse_decimal(raw: str) -> Optional[float]:
    """pt-BR first (1.234,56), then en-US (1,234.56)."""
    value = raw.strip().rstrip(".,")
    if PT_BR_NUMBER_RE.fullmatch(value):
        return float(value.replace(".", "").replace(",", "."))
    if EN_NUMBER_RE.fullmatch(value):
        return float(value.replace(",", ""))
    return None


def parse_salary(salary_text: Optional[str]) -> SalaryRange:
    if not salary_text or not salary_text.strip():
        return SalaryRange()

    numbers = []
    for token in SALARY_NUMBER_RE.findall(salary_text):
        value = _parse_decimal(token)
        if value is not None:
            numbers.append(value)

    currency = "BRL" if "r$" in salary_text.lower() else None
    period = "month" if "mes" in normalize(salary_text) else None

    if not numbers:
        return SalaryRange(currency=currency, period=period)
    if len(numbers) == 1:
        return SalaryRange(numbers[0], numbers[0], currency, period)
    return SalaryRange(numbers[0], numbers[1], currency, period)


def looks_like_job_link(href: str) -> bool:
    lowered = href.lower()
    return any(marker in lowered for marker in JOB_LINK_MARKERS)


def extract_corporate_location(context: str) -> str:
    if not context:
        return ""
    match = CORPORATE_LOCATION_RE.search(context)
    return match.group("loc").strip() if match else ""


def parse_totvs_list(html: str, start_url: str, company: str = "TOTVS") -> List[ParsedSourceJob]:
    """Job anchors from a corporate careers page without structured data."""
    if not html or not html.strip():
        return []

    jobs: List[ParsedSourceJob] = []
    seen = set()

    for match in JOB_ANCHOR_RE.finditer(html):
        href = match.group("href")
        if not href or not href.strip() or not looks_like_job_link(href):
            continue

        title = clean_html_text(match.group("title"))
        if len(title) < MIN_CORPORATE_TITLE_LENGTH:
            continue

        url = make_absolute(href, start_url)
        if url.lower() in seen:
            continue
        seen.add(url.lower())

        context = clean_html_text(match.group("tail"))
        jobs.append(ParsedSourceJob(
            title=title,
            url=url,
            company=company,
            location_text=extract_corporate_location(context),
            source_job_id=build_stable_source_job_id(None, url),
            work_mode_text=context,
        ))

    return jobs
