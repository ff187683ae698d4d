"""
Keyword-based field inference: work mode, employment type, tags, languages.

All matching is deterministic and runs over normalized text.
"""

from typing import List, Optional, Sequence, Tuple

from core.models import EmploymentType, WorkMode
from core.normalize import normalize

# needle -> tag, in output order
TAG_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    (".net", "dotnet"),
    ("asp.net", "dotnet"),
    ("c#", "csharp"),
    ("react", "react"),
    ("typescript", "typescript"),
    ("javascript", "javascript"),
    ("azure", "azure"),
    ("aws", "aws"),
    ("postgres", "postgres"),
    ("postgresql", "postgres"),
    ("kafka", "kafka"),
    ("docker", "docker"),
    ("kubernetes", "kubernetes"),
    ("golang", "golang"),
    ("java", "java"),
    ("python", "python"),
)

PT_BR_CHARS = "ãõçáéíóú"


def infer_work_mode(text: Optional[str]) -> WorkMode:
    normalized = normalize(text)
    if "remote" in normalized or "remoto" in normalized:
        return WorkMode.REMOTE
    if "hybrid" in normalized or "hibrido" in normalized:
        return WorkMode.HYBRID
    if "onsite" in normalized or "presencial" in normalized:
        return WorkMode.ONSITE
    return WorkMode.UNKNOWN


def infer_employment_type(raw: Optional[str], description: Optional[str] = None) -> EmploymentType:
    """Employment type from the declared value plus description text."""
    text = normalize(f"{raw or ''} {description or ''}")
    if "intern" in text or "estagio" in text:
        return EmploymentType.INTERNSHIP
    if "contractor" in text or "pj" in text:
        return EmploymentType.CONTRACTOR
    if "temporary" in text or "temporario" in text:
        return EmploymentType.TEMPORARY
    if "clt" in text:
        return EmploymentType.CLT
    return EmploymentType.UNKNOWN


def infer_workday_employment_type(raw: Optional[str]) -> EmploymentType:
    """Workday timeType/workerSubType labels ("Full time", "Intern", "Contract")."""
    if not raw or not raw.strip():
        return EmploymentType.UNKNOWN
    text = normalize(raw)
    if "intern" in text:
        return EmploymentType.INTERNSHIP
    if "temporary" in text or "temp" in text:
        return EmploymentType.TEMPORARY
    if "contract" in text:
        return EmploymentType.CONTRACTOR
    return EmploymentType.UNKNOWN


def infer_tags(title: Optional[str], description: Optional[str]) -> List[str]:
    combined = f"{title or ''} {description or ''}"
    raw_text = combined.lower()
    text = normalize(combined)

    padded = f" {text} "

    tags: List[str] = []
    for needle, tag in TAG_KEYWORDS:
        if tag in tags:
            continue
        normalized_needle = normalize(needle)
        if needle in raw_text:
            tags.append(tag)
        elif normalized_needle and normalized_needle != needle:
            # punctuation needles (".net", "c#") shrink to short words; match whole tokens only
            if f" {normalized_needle} " in padded:
                tags.append(tag)
        elif normalized_needle and normalized_needle in text:
            tags.append(tag)
    return tags


def infer_languages(text: Optional[str], empty_default: Sequence[str] = ()) -> List[str]:
    if not text or not text.strip():
        return list(empty_default)
    if any(ch.lower() in PT_BR_CHARS for ch in text):
        return ["pt-BR"]
    return ["en"]
