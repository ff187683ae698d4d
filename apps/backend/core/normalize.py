"""
Text normalization helpers shared by fingerprinting, inference and parsers.

normalize() canonicalizes free text for comparison:
- trim + lowercase
- strip diacritics (NFD, drop combining marks, NFC)
- punctuation -> space
- collapse whitespace
"""

import re
import html
import hashlib
import unicodedata
from typing import Optional
from urllib.parse import urljoin, urlparse

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Canonicalize free text. Idempotent; None/blank -> ''."""
    if not text or not text.strip():
        return ""

    lowered = text.strip().lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    recomposed = unicodedata.normalize("NFC", stripped)

    cleaned = "".join(ch if ch.isalnum() or ch.isspace() else " " for ch in recomposed)
    return " ".join(cleaned.split())


def clean_html_text(raw: Optional[str]) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not raw or not raw.strip():
        return ""
    without_tags = _TAG_RE.sub(" ", raw)
    decoded = html.unescape(without_tags)
    return _WS_RE.sub(" ", decoded).strip()


def is_absolute_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def make_absolute(url: str, base_url: str) -> str:
    """Resolve url against base_url; absolute urls are returned as-is."""
    url = (url or "").strip()
    if is_absolute_url(url):
        return url
    try:
        return urljoin(base_url, url)
    except ValueError:
        return url


def url_hash_id(url: str) -> str:
    """Stable 16-hex id derived from the lowercased url."""
    digest = hashlib.sha256((url or "").strip().lower().encode("utf-8")).hexdigest()
    return "url:" + digest[:16]
