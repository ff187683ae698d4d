"""
Dedupe fingerprint over normalized (company, title, location, work mode).
"""

import hashlib
from typing import Optional, Union

from core.models import WorkMode
from core.normalize import normalize


def compute_fingerprint(
    company: Optional[str],
    title: Optional[str],
    location_text: Optional[str],
    work_mode: Union[WorkMode, str, None],
) -> str:
    """
    Deterministic dedupe key for a posting.

    Insensitive to case, diacritics, punctuation and spacing; any real change
    in one of the four fields yields a different key.
    """
    if isinstance(work_mode, WorkMode):
        work_mode = work_mode.value

    key = "|".join([
        normalize(company),
        normalize(title),
        normalize(location_text),
        normalize(work_mode),
    ])
    return "sha256:" + hashlib.sha256(key.encode("utf-8")).hexdigest()
