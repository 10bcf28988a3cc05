# leadpipe/ingest/normalize.py
"""
Identity normalization for company records.

Company name, email and phone are canonicalized before any equality
comparison so that "ACME Plumbing, Inc." and "Acme Plumbing" resolve to the
same record:

    norm_company_name("ACME Plumbing, Inc.")  -> "acme plumbing"
    norm_email("  Info@AcmePlumbing.COM ")    -> "info@acmeplumbing.com"
    norm_phone("(555) 010-2030")              -> "5550102030"
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

# Trailing legal-entity tokens, compared after punctuation is removed
# ("L.L.C." -> "llc", "Co." -> "co").
LEGAL_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "corp",
        "corporation",
        "llc",
        "pllc",
        "llp",
        "lp",
        "ltd",
        "limited",
        "co",
        "company",
        "plc",
        "pc",
    }
)

_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_NON_DIGIT_RE = re.compile(r"\D")


# ---------------------------------------------------------------------------
# Small utils
# ---------------------------------------------------------------------------


def _to_nfkc(s: str) -> str:
    return unicodedata.normalize("NFKC", s)


def _collapse_ws(s: str) -> str:
    return " ".join(str(s).strip().split())


def strip_diacritics(s: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))


def clean_text(value: object) -> str | None:
    """Trim and NFKC-normalize a free-text field; empty -> None."""
    if value is None:
        return None
    s = _collapse_ws(_to_nfkc(str(value)))
    return s or None


# ---------------------------------------------------------------------------
# Identity keys
# ---------------------------------------------------------------------------


def norm_company_name(name: str | None) -> str | None:
    """
    Case-fold, strip punctuation and diacritics, drop trailing legal suffixes.

    Only *trailing* suffix tokens are removed so names such as
    "Co Op Heating" keep their leading words. At least one token is always
    kept ("Company" -> "company").
    """
    if not name:
        return None
    s = strip_diacritics(_to_nfkc(str(name))).casefold()
    s = _PUNCT_RE.sub("", s)
    tokens = s.split()
    while len(tokens) > 1 and tokens[-1] in LEGAL_SUFFIXES:
        tokens.pop()
    out = " ".join(tokens)
    return out or None


def norm_email(email: str | None) -> str | None:
    if not email:
        return None
    e = _to_nfkc(str(email)).strip().lower()
    return e or None


def norm_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    digits = _NON_DIGIT_RE.sub("", str(phone))
    return digits or None


# ---------------------------------------------------------------------------
# List helpers used by the resolver merge
# ---------------------------------------------------------------------------


def merge_unique(existing: Iterable[str], incoming: Iterable[str | None], key) -> list[str]:
    """
    Append each incoming value whose normalized key is not already present.

    Existing order is preserved; values whose key normalizes to None are dropped.
    """
    out = [v for v in existing if v]
    seen = {key(v) for v in out}
    seen.discard(None)
    for value in incoming:
        k = key(value)
        if k is None or k in seen:
            continue
        out.append(str(value).strip())
        seen.add(k)
    return out


def union_tags(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    """Ordered, case-insensitive union of industry tags."""
    out: list[str] = []
    seen: set[str] = set()
    for tag in [*existing, *incoming]:
        t = clean_text(tag)
        if not t or t.casefold() in seen:
            continue
        seen.add(t.casefold())
        out.append(t)
    return out


__all__ = [
    "LEGAL_SUFFIXES",
    "clean_text",
    "strip_diacritics",
    "norm_company_name",
    "norm_email",
    "norm_phone",
    "merge_unique",
    "union_tags",
]
