# leadpipe/ingest/resolver.py
"""
Company upsert/merge keyed on normalized identity.

Lookup priority: normalized name, then email membership, then phone
membership. The lookup and the write share one BEGIN IMMEDIATE transaction,
so two photos of the same truck processed in the same batch cannot both
insert.

Merge rules for an existing match:
  - status "sent"           -> skipped, nothing written
  - email / phone lists     -> append values not already present (normalized)
  - industry tags           -> ordered union
  - city / state / website  -> only filled when currently empty
  - updated_at              -> bumped

Only a fresh insert returns was_insert=True; callers enqueue enrichment on
that flag alone so known leads are never re-enriched.
"""

from __future__ import annotations

import logging
import sqlite3

from leadpipe.db import Store, dumps_list, new_id, row_to_company, utc_now_iso
from leadpipe.ingest.normalize import (
    clean_text,
    merge_unique,
    norm_company_name,
    norm_email,
    norm_phone,
    union_tags,
)
from leadpipe.models import CompanyCandidate, CompanyStatus, UpsertResult

log = logging.getLogger(__name__)

SKIP_ALREADY_CONTACTED = "already_contacted"


def _find_existing(
    con: sqlite3.Connection,
    name_norm: str | None,
    email_norm: str | None,
    phone_norm: str | None,
) -> tuple[sqlite3.Row | None, str | None]:
    """Return (company row, matched-on) following name > email > phone priority."""
    if name_norm:
        row = con.execute(
            "SELECT * FROM companies WHERE name_norm = ? ORDER BY created_at LIMIT 1",
            (name_norm,),
        ).fetchone()
        if row:
            return row, "name"
    for kind, value in (("email", email_norm), ("phone", phone_norm)):
        if not value:
            continue
        row = con.execute(
            """
            SELECT c.* FROM companies c
            JOIN company_identities i ON i.company_id = c.id
            WHERE i.kind = ? AND i.value = ?
            ORDER BY c.created_at LIMIT 1
            """,
            (kind, value),
        ).fetchone()
        if row:
            return row, kind
    return None, None


def _write_identities(
    con: sqlite3.Connection, company_id: str, emails: list[str], phones: list[str]
) -> None:
    pairs = [("email", norm_email(e)) for e in emails] + [("phone", norm_phone(p)) for p in phones]
    con.executemany(
        "INSERT OR IGNORE INTO company_identities (company_id, kind, value) VALUES (?, ?, ?)",
        [(company_id, kind, value) for kind, value in pairs if value],
    )


def _insert(con: sqlite3.Connection, cand: CompanyCandidate, name_norm: str | None) -> str:
    company_id = new_id()
    now = utc_now_iso()
    emails = merge_unique([], [cand.email], norm_email)
    phones = merge_unique([], [cand.phone], norm_phone)
    con.execute(
        """
        INSERT INTO companies (
          id, name, name_norm, industry, email, phone, city, state, website,
          status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            company_id,
            clean_text(cand.name) or "",
            name_norm,
            dumps_list(union_tags([], cand.industry or [])),
            dumps_list(emails),
            dumps_list(phones),
            clean_text(cand.city),
            clean_text(cand.state),
            clean_text(cand.website),
            CompanyStatus.ENRICHING.value,
            now,
            now,
        ),
    )
    _write_identities(con, company_id, emails, phones)
    return company_id


def _merge(con: sqlite3.Connection, row: sqlite3.Row, cand: CompanyCandidate) -> None:
    existing = row_to_company(row)
    emails = merge_unique(existing.email, [cand.email], norm_email)
    phones = merge_unique(existing.phone, [cand.phone], norm_phone)
    industry = union_tags(existing.industry, cand.industry or [])
    con.execute(
        """
        UPDATE companies
        SET email = ?, phone = ?, industry = ?,
            city = COALESCE(NULLIF(city, ''), ?),
            state = COALESCE(NULLIF(state, ''), ?),
            website = COALESCE(NULLIF(website, ''), ?),
            updated_at = ?
        WHERE id = ?
        """,
        (
            dumps_list(emails),
            dumps_list(phones),
            dumps_list(industry),
            clean_text(cand.city),
            clean_text(cand.state),
            clean_text(cand.website),
            utc_now_iso(),
            existing.id,
        ),
    )
    _write_identities(con, existing.id, emails, phones)


def upsert_company(store: Store, candidate: CompanyCandidate) -> UpsertResult:
    name_norm = norm_company_name(candidate.name)
    email_norm = norm_email(candidate.email)
    phone_norm = norm_phone(candidate.phone)

    if not (name_norm or email_norm or phone_norm):
        raise ValueError("company candidate has no name, email or phone to resolve on")

    with store.transaction() as con:
        row, matched_on = _find_existing(con, name_norm, email_norm, phone_norm)

        if row is None:
            company_id = _insert(con, candidate, name_norm)
            log.info(
                "inserted company %s name=%r",
                company_id,
                candidate.name,
                extra={"company_id": company_id, "name_norm": name_norm},
            )
            return UpsertResult(company_id=company_id, was_insert=True)

        company_id = row["id"]
        if row["status"] == CompanyStatus.SENT.value:
            log.info(
                "company %s already contacted; skipping merge (matched on %s)",
                company_id,
                matched_on,
            )
            return UpsertResult(
                company_id=company_id,
                was_insert=False,
                skipped=True,
                reason=SKIP_ALREADY_CONTACTED,
            )

        _merge(con, row, candidate)
        log.info("merged into company %s (matched on %s)", company_id, matched_on)
        return UpsertResult(company_id=company_id, was_insert=False)


__all__ = ["upsert_company", "SKIP_ALREADY_CONTACTED"]
