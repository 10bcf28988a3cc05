# tests/test_normalization.py
import pytest

from leadpipe.ingest.normalize import (
    clean_text,
    merge_unique,
    norm_company_name,
    norm_email,
    norm_phone,
    union_tags,
)

# -----------------------------
# Company name normalization
# -----------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("ACME Plumbing, Inc.", "acme plumbing"),
        ("Acme Plumbing", "acme plumbing"),
        ("acme plumbing inc", "acme plumbing"),
        ("Acme Plumbing L.L.C.", "acme plumbing"),
        ("Acme Plumbing Co.", "acme plumbing"),
        ("Acme Plumbing Corp Ltd", "acme plumbing"),
        # diacritics and NFKC width forms
        ("Café Heating", "cafe heating"),
        ("ＡＣＭＥ Plumbing", "acme plumbing"),
        # only trailing suffixes go; a lone suffix token is kept
        ("Co Op Heating", "co op heating"),
        ("Company", "company"),
        (None, None),
        ("", None),
        ("  ...  ", None),
    ],
)
def test_norm_company_name(raw, expected):
    assert norm_company_name(raw) == expected


# -----------------------------
# Email / phone
# -----------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Info@AcmePlumbing.COM ", "info@acmeplumbing.com"),
        ("office@acme.com", "office@acme.com"),
        ("", None),
        (None, None),
    ],
)
def test_norm_email(raw, expected):
    assert norm_email(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("(555) 010-2030", "5550102030"),
        ("555.010.2030", "5550102030"),
        ("+1 555 010 2030", "15550102030"),
        ("call us", None),
        (None, None),
    ],
)
def test_norm_phone(raw, expected):
    assert norm_phone(raw) == expected


def test_clean_text_collapses_whitespace():
    assert clean_text("  Denver \n  CO ") == "Denver CO"
    assert clean_text("   ") is None
    assert clean_text(None) is None


# -----------------------------
# Merge helpers
# -----------------------------


def test_merge_unique_appends_only_new_normalized_values():
    existing = ["Info@Acme.com"]
    out = merge_unique(existing, ["info@acme.com ", "sales@acme.com", None], norm_email)
    assert out == ["Info@Acme.com", "sales@acme.com"]


def test_merge_unique_phone_formats_collapse():
    out = merge_unique(["(555) 010-2030"], ["555-010-2030", "555 999 0000"], norm_phone)
    assert out == ["(555) 010-2030", "555 999 0000"]


def test_union_tags_is_ordered_and_case_insensitive():
    assert union_tags(["Plumbing", "Heating"], ["heating", "Cooling", " "]) == [
        "Plumbing",
        "Heating",
        "Cooling",
    ]
