# leadpipe/enrich/contacts.py
"""
Contact discovery and enrichment for a resolved directory company.

    search_contacts(company)  -> raw people (empty -> contacts_failed)
    keep decision-makers      -> none left -> processed, no enrichment call
    enrich_contacts(ids)      -> verified email/phone + company firmographics
    classify each person      -> no_contact | low_revenue | generating_message

The company ends low_revenue only when every enriched contact is low_revenue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from leadpipe.config import REVENUE_MIN_FILTER
from leadpipe.enrich.titles import is_decision_maker
from leadpipe.models import CompanyStatus, ContactStatus
from leadpipe.services.directory import SearchResponse

log = logging.getLogger(__name__)


class ContactDirectory(Protocol):
    def search_contacts(self, company_id: int) -> SearchResponse: ...

    def enrich_contacts(self, person_ids: list[int]) -> list[dict[str, Any]]: ...


@dataclass
class EnrichedContact:
    external_id: int
    status: ContactStatus
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    accuracy_score: int | None = None

    @property
    def name(self) -> str:
        parts = [p for p in (self.first_name, self.middle_name, self.last_name) if p]
        return " ".join(parts) or f"contact {self.external_id}"


@dataclass
class EnrichmentResult:
    company_status: CompanyStatus
    contacts: list[EnrichedContact] = field(default_factory=list)
    revenue: int | None = None
    sic_codes: str | None = None
    naics_codes: str | None = None
    primary_industry: str | None = None
    raw_count: int = 0
    filtered_count: int = 0

    @property
    def ready_for_message(self) -> list[EnrichedContact]:
        return [c for c in self.contacts if c.status == ContactStatus.GENERATING_MESSAGE]


def _str_or_none(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _int_or_none(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


def company_revenue(person: dict[str, Any]) -> int | None:
    company = person.get("company") or {}
    value = company.get("revenueNumeric")
    if value is None:
        value = person.get("companyRevenueNumeric")
    return _int_or_none(value)


def _codes(person: dict[str, Any], nested: str, flat: str) -> list[dict[str, Any]]:
    company = person.get("company") or {}
    codes = company.get(nested) or person.get(flat) or []
    return [c for c in codes if isinstance(c, dict) and c.get("id")]


def sic_codes(person: dict[str, Any]) -> str | None:
    codes = _codes(person, "sicCodes", "companySicCodes")
    return ",".join(str(c["id"]) for c in codes) or None


def naics_codes(person: dict[str, Any]) -> tuple[str | None, str | None]:
    """(comma-joined NAICS ids, name of the most specific code)."""
    codes = _codes(person, "naicsCodes", "companyNaicsCodes")
    if not codes:
        return None, None
    joined = ",".join(str(c["id"]) for c in codes)
    most_specific = max(codes, key=lambda c: len(str(c["id"])))
    return joined, _str_or_none(most_specific.get("name"))


def classify(person: dict[str, Any], revenue: int | None, revenue_min: int) -> EnrichedContact:
    email = _str_or_none(person.get("email"))
    phone = _str_or_none(person.get("mobilePhone")) or _str_or_none(person.get("phone"))

    if not email and not phone:
        status = ContactStatus.NO_CONTACT
    elif revenue is not None and revenue < revenue_min:
        status = ContactStatus.LOW_REVENUE
    else:
        status = ContactStatus.GENERATING_MESSAGE

    return EnrichedContact(
        external_id=int(person["id"]),
        status=status,
        first_name=_str_or_none(person.get("firstName")),
        middle_name=_str_or_none(person.get("middleName")),
        last_name=_str_or_none(person.get("lastName")),
        title=_str_or_none(person.get("jobTitle")),
        email=email,
        phone=phone,
        accuracy_score=_int_or_none(person.get("contactAccuracyScore")),
    )


class ContactEnricher:
    def __init__(self, directory: ContactDirectory, *, revenue_min: int = REVENUE_MIN_FILTER) -> None:
        self.directory = directory
        self.revenue_min = revenue_min

    def enrich(self, external_company_id: int) -> EnrichmentResult:
        raw = self.directory.search_contacts(external_company_id).data
        if not raw:
            log.info("directory company %s has no contacts", external_company_id)
            return EnrichmentResult(company_status=CompanyStatus.CONTACTS_FAILED)

        keep = [p for p in raw if p.get("id") is not None and is_decision_maker(p.get("jobTitle"))]
        log.info(
            "directory company %s: %d contacts, %d decision-makers",
            external_company_id,
            len(raw),
            len(keep),
        )
        if not keep:
            return EnrichmentResult(
                company_status=CompanyStatus.PROCESSED, raw_count=len(raw), filtered_count=0
            )

        enriched = self.directory.enrich_contacts([int(p["id"]) for p in keep])
        enriched = [p for p in enriched if p.get("id") is not None]

        revenue = company_revenue(enriched[0]) if enriched else None
        sic = sic_codes(enriched[0]) if enriched else None
        naics, primary = naics_codes(enriched[0]) if enriched else (None, None)

        contacts = [classify(p, revenue, self.revenue_min) for p in enriched]
        all_low = bool(contacts) and all(c.status == ContactStatus.LOW_REVENUE for c in contacts)

        return EnrichmentResult(
            company_status=CompanyStatus.LOW_REVENUE if all_low else CompanyStatus.PROCESSED,
            contacts=contacts,
            revenue=revenue,
            sic_codes=sic,
            naics_codes=naics,
            primary_industry=primary,
            raw_count=len(raw),
            filtered_count=len(keep),
        )


__all__ = [
    "ContactEnricher",
    "EnrichedContact",
    "EnrichmentResult",
    "classify",
    "company_revenue",
    "sic_codes",
    "naics_codes",
]
