# tests/test_contact_enrichment.py
from __future__ import annotations

import pytest

from leadpipe.enrich.contacts import ContactEnricher, classify, naics_codes, sic_codes
from leadpipe.enrich.titles import is_decision_maker
from leadpipe.models import CompanyStatus, ContactStatus
from tests.fakes import FakeDirectory

REVENUE_MIN = 2_000_000


def _person(pid, title, **kw):
    p = {"id": pid, "firstName": f"First{pid}", "lastName": f"Last{pid}", "jobTitle": title}
    p.update(kw)
    return p


def _firm(revenue, **kw):
    company = {
        "revenueNumeric": revenue,
        "sicCodes": [{"id": "1711", "name": "Plumbing"}],
        "naicsCodes": [
            {"id": "23", "name": "Construction"},
            {"id": "238220", "name": "Plumbing, Heating, and Air-Conditioning Contractors"},
        ],
    }
    company.update(kw)
    return company


# -----------------------------
# Title filter
# -----------------------------


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Owner", True),
        ("Co-Owner", True),
        ("Founder & CEO", True),
        ("Co-Founder", True),
        ("Chief Executive Officer", True),
        ("President", True),
        ("president and owner", True),
        ("Vice President", False),
        ("Vice-President of Sales", False),
        ("VP Operations", False),
        ("Owner & VP Sales", True),
        ("Office Manager", False),
        ("Ownership Analyst", False),
        ("", False),
        (None, False),
    ],
)
def test_is_decision_maker(title, expected):
    assert is_decision_maker(title) is expected


# -----------------------------
# Per-contact classification
# -----------------------------


def test_classify_without_email_or_phone_is_no_contact():
    c = classify(_person(1, "Owner"), revenue=5_000_000, revenue_min=REVENUE_MIN)
    assert c.status == ContactStatus.NO_CONTACT


def test_classify_below_threshold_is_low_revenue():
    c = classify(_person(1, "Owner", email="a@x.com"), revenue=1_999_999, revenue_min=REVENUE_MIN)
    assert c.status == ContactStatus.LOW_REVENUE


def test_classify_at_threshold_generates_message_and_prefers_mobile():
    person = _person(1, "Owner", phone="555-0100", mobilePhone="555-0199", contactAccuracyScore="95")
    c = classify(person, revenue=2_000_000, revenue_min=REVENUE_MIN)
    assert c.status == ContactStatus.GENERATING_MESSAGE
    assert c.phone == "555-0199"
    assert c.accuracy_score == 95
    assert c.name == "First1 Last1"


def test_classify_unknown_revenue_is_not_filtered():
    c = classify(_person(1, "Owner", email="a@x.com"), revenue=None, revenue_min=REVENUE_MIN)
    assert c.status == ContactStatus.GENERATING_MESSAGE


def test_firmographic_codes():
    person = {"company": _firm(3_000_000)}
    assert sic_codes(person) == "1711"
    assert naics_codes(person) == (
        "23,238220",
        "Plumbing, Heating, and Air-Conditioning Contractors",
    )
    assert naics_codes({}) == (None, None)


# -----------------------------
# Company-level enrichment
# -----------------------------


def test_no_raw_contacts_marks_contacts_failed():
    directory = FakeDirectory(contacts=[])
    result = ContactEnricher(directory).enrich(42)

    assert result.company_status == CompanyStatus.CONTACTS_FAILED
    assert directory.enrich_calls == []


def test_no_decision_makers_is_processed_without_enrichment():
    directory = FakeDirectory(contacts=[_person(1, "Dispatcher"), _person(2, "VP Sales")])
    result = ContactEnricher(directory).enrich(42)

    assert result.company_status == CompanyStatus.PROCESSED
    assert result.contacts == []
    assert result.raw_count == 2
    assert directory.enrich_calls == []


def test_only_decision_makers_are_enriched():
    raw = [_person(1, "Owner"), _person(2, "Dispatcher"), _person(3, "President")]
    enriched = {
        1: _person(1, "Owner", email="owner@acme.com", company=_firm(4_000_000)),
        3: _person(3, "President", phone="555-0100", company=_firm(4_000_000)),
    }
    directory = FakeDirectory(contacts=raw, enriched=enriched)

    result = ContactEnricher(directory, revenue_min=REVENUE_MIN).enrich(42)

    assert directory.enrich_calls == [[1, 3]]
    assert result.company_status == CompanyStatus.PROCESSED
    assert result.revenue == 4_000_000
    assert result.sic_codes == "1711"
    assert result.naics_codes == "23,238220"
    assert result.primary_industry.startswith("Plumbing")
    assert [c.external_id for c in result.ready_for_message] == [1, 3]


def test_all_low_revenue_contacts_mark_company_low_revenue():
    raw = [_person(1, "Owner"), _person(2, "CEO")]
    enriched = {
        1: _person(1, "Owner", email="a@acme.com", company=_firm(500_000)),
        2: _person(2, "CEO", phone="555-0100", company=_firm(500_000)),
    }
    result = ContactEnricher(FakeDirectory(contacts=raw, enriched=enriched)).enrich(42)

    assert result.company_status == CompanyStatus.LOW_REVENUE
    assert result.ready_for_message == []


def test_mixed_low_and_unreachable_contacts_stay_processed():
    raw = [_person(1, "Owner"), _person(2, "CEO")]
    enriched = {
        1: _person(1, "Owner", email="a@acme.com", company=_firm(500_000)),
        2: _person(2, "CEO", company=_firm(500_000)),
    }
    result = ContactEnricher(FakeDirectory(contacts=raw, enriched=enriched)).enrich(42)

    statuses = {c.external_id: c.status for c in result.contacts}
    assert statuses == {1: ContactStatus.LOW_REVENUE, 2: ContactStatus.NO_CONTACT}
    assert result.company_status == CompanyStatus.PROCESSED


@pytest.mark.parametrize("revenue", [0, 1_000_000, 1_999_999, 2_000_000, 10_000_000])
def test_generating_contacts_always_meet_threshold_and_title(revenue):
    raw = [_person(1, "Owner"), _person(2, "Office Manager")]
    enriched = {
        1: _person(1, "Owner", email="a@acme.com", company=_firm(revenue)),
        2: _person(2, "Office Manager", email="b@acme.com", company=_firm(revenue)),
    }
    result = ContactEnricher(FakeDirectory(contacts=raw, enriched=enriched)).enrich(42)

    for c in result.ready_for_message:
        assert is_decision_maker(c.title)
        assert result.revenue >= REVENUE_MIN
    assert bool(result.ready_for_message) is (revenue >= REVENUE_MIN)


def test_low_revenue_ceo_is_not_ready_and_non_executive_never_enriched():
    raw = [_person(1, "CEO"), _person(2, "Estimator")]
    enriched = {
        1: _person(1, "CEO", email="ceo@acme.com", phone="555-0100", company=_firm(1_500_000)),
    }
    directory = FakeDirectory(contacts=raw, enriched=enriched)

    result = ContactEnricher(directory, revenue_min=REVENUE_MIN).enrich(42)

    assert directory.enrich_calls == [[1]]
    assert [c.status for c in result.contacts] == [ContactStatus.LOW_REVENUE]
    assert result.ready_for_message == []
