# leadpipe/models.py
"""
Entity types and the status state machines that drive them.

Company and Contact statuses are closed enums. Every status write goes through
`check_company_transition` / `check_contact_transition`, which raise
InvalidStatusTransition for moves the tables below do not allow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from leadpipe.exceptions import InvalidStatusTransition


class CompanyStatus(str, Enum):
    ENRICHING = "enriching"
    PROCESSED = "processed"
    LOW_REVENUE = "low_revenue"
    NOT_FOUND = "not_found"
    CONTACTS_FAILED = "contacts_failed"
    SENT = "sent"


class ContactStatus(str, Enum):
    GENERATING_MESSAGE = "generating_message"
    READY_TO_SEND = "ready_to_send"
    FAILED = "failed"
    NO_CONTACT = "no_contact"
    LOW_REVENUE = "low_revenue"


_C = CompanyStatus
COMPANY_TRANSITIONS: dict[CompanyStatus, frozenset[CompanyStatus]] = {
    _C.ENRICHING: frozenset(
        {_C.PROCESSED, _C.LOW_REVENUE, _C.NOT_FOUND, _C.CONTACTS_FAILED, _C.SENT}
    ),
    # An operator marks a finished lead as contacted
    _C.PROCESSED: frozenset({_C.SENT}),
    _C.LOW_REVENUE: frozenset({_C.SENT}),
    _C.NOT_FOUND: frozenset({_C.SENT}),
    _C.CONTACTS_FAILED: frozenset({_C.SENT}),
    _C.SENT: frozenset(),
}

_P = ContactStatus
CONTACT_TRANSITIONS: dict[ContactStatus, frozenset[ContactStatus]] = {
    _P.GENERATING_MESSAGE: frozenset({_P.READY_TO_SEND, _P.FAILED}),
    _P.READY_TO_SEND: frozenset(),
    _P.FAILED: frozenset(),
    _P.NO_CONTACT: frozenset(),
    _P.LOW_REVENUE: frozenset(),
}

TERMINAL_COMPANY_STATUSES = frozenset(s for s, nxt in COMPANY_TRANSITIONS.items() if not nxt)
TERMINAL_CONTACT_STATUSES = frozenset(s for s, nxt in CONTACT_TRANSITIONS.items() if not nxt)


def check_company_transition(current: CompanyStatus | str, target: CompanyStatus | str) -> None:
    cur, tgt = CompanyStatus(current), CompanyStatus(target)
    if tgt not in COMPANY_TRANSITIONS[cur]:
        raise InvalidStatusTransition("company", cur.value, tgt.value)


def check_contact_transition(current: ContactStatus | str, target: ContactStatus | str) -> None:
    cur, tgt = ContactStatus(current), ContactStatus(target)
    if tgt not in CONTACT_TRANSITIONS[cur]:
        raise InvalidStatusTransition("contact", cur.value, tgt.value)


@dataclass
class Company:
    id: str
    name: str
    industry: list[str] = field(default_factory=list)
    email: list[str] = field(default_factory=list)
    phone: list[str] = field(default_factory=list)
    city: str | None = None
    state: str | None = None
    website: str | None = None
    external_id: int | None = None
    revenue: int | None = None
    status: CompanyStatus = CompanyStatus.ENRICHING
    sic_codes: str | None = None
    naics_codes: str | None = None
    primary_industry: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Contact:
    id: str
    company_id: str
    external_id: int
    name: str
    status: ContactStatus
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    accuracy_score: int | None = None
    email_subject: str | None = None
    email_body: str | None = None
    text_message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class VehiclePhoto:
    image_path: str
    company_id: str | None = None
    location: str | None = None
    created_at: str | None = None


@dataclass
class CompanyCandidate:
    """A company parsed from one photo, before identity resolution."""

    name: str
    industry: list[str] = field(default_factory=list)
    email: str | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None
    website: str | None = None


@dataclass
class UpsertResult:
    company_id: str | None
    was_insert: bool
    skipped: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "was_insert": self.was_insert,
            "skipped": self.skipped,
            "reason": self.reason,
        }


__all__ = [
    "CompanyStatus",
    "ContactStatus",
    "COMPANY_TRANSITIONS",
    "CONTACT_TRANSITIONS",
    "TERMINAL_COMPANY_STATUSES",
    "TERMINAL_CONTACT_STATUSES",
    "check_company_transition",
    "check_contact_transition",
    "Company",
    "Contact",
    "VehiclePhoto",
    "CompanyCandidate",
    "UpsertResult",
]
