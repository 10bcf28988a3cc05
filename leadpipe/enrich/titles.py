# leadpipe/enrich/titles.py
from __future__ import annotations

import re

# Decision-maker titles (case-insensitive, whole words).
_DECISION_MAKER_RE = re.compile(
    r"\b(?:co[-\s]?owner|owner|founder|co[-\s]?founder|ceo|chief\s+executive\s+officer|president)\b",
    re.IGNORECASE,
)
_VICE_RE = re.compile(r"\bvice\b|\bvp\b", re.IGNORECASE)


def is_decision_maker(title: str | None) -> bool:
    """
    True for owner / co-owner / founder / CEO / president titles.

    Vice presidents are excluded even when "President" appears in the title;
    a title that names a real decision-maker role alongside the vice one
    (e.g. "Owner & VP Sales") still qualifies.
    """
    if not title:
        return False
    t = " ".join(title.split())
    if not _DECISION_MAKER_RE.search(t):
        return False
    if _VICE_RE.search(t):
        remainder = re.sub(r"\bvice[-\s]+president\b|\bvp\b", " ", t, flags=re.IGNORECASE)
        return bool(_DECISION_MAKER_RE.search(remainder))
    return True


__all__ = ["is_decision_maker"]
