# leadpipe/db.py
"""
SQLite entity store: companies, contacts, vehicle photos, directory tokens.

Every public method opens its own short-lived connection so the store can be
shared by the fan-out threads of one batch. Writes that must be atomic run
inside `transaction()`, which takes SQLite's write lock up front
(BEGIN IMMEDIATE).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from leadpipe.exceptions import InvalidStatusTransition
from leadpipe.models import (
    Company,
    CompanyStatus,
    Contact,
    ContactStatus,
    TERMINAL_CONTACT_STATUSES,
    VehiclePhoto,
    check_company_transition,
    check_contact_transition,
)

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS companies (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  name_norm TEXT,
  industry TEXT NOT NULL DEFAULT '[]',
  email TEXT NOT NULL DEFAULT '[]',
  phone TEXT NOT NULL DEFAULT '[]',
  city TEXT,
  state TEXT,
  website TEXT,
  external_id INTEGER,
  revenue INTEGER,
  status TEXT NOT NULL DEFAULT 'enriching',
  sic_codes TEXT,
  naics_codes TEXT,
  primary_industry TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_companies_name_norm ON companies(name_norm);

CREATE TABLE IF NOT EXISTS company_identities (
  company_id TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
  kind TEXT NOT NULL CHECK (kind IN ('email', 'phone')),
  value TEXT NOT NULL,
  PRIMARY KEY (company_id, kind, value)
);
CREATE INDEX IF NOT EXISTS ix_company_identities_lookup ON company_identities(kind, value);

CREATE TABLE IF NOT EXISTS contacts (
  id TEXT PRIMARY KEY,
  company_id TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
  external_id INTEGER NOT NULL UNIQUE,
  name TEXT NOT NULL,
  first_name TEXT,
  middle_name TEXT,
  last_name TEXT,
  title TEXT,
  email TEXT,
  phone TEXT,
  accuracy_score INTEGER,
  status TEXT NOT NULL,
  email_subject TEXT,
  email_body TEXT,
  text_message TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_contacts_company ON contacts(company_id);

CREATE TABLE IF NOT EXISTS vehicle_photos (
  image_path TEXT PRIMARY KEY,
  company_id TEXT REFERENCES companies(id) ON DELETE SET NULL,
  location TEXT,
  created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_vehicle_photos_company ON vehicle_photos(company_id);

CREATE TABLE IF NOT EXISTS directory_auth (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  token TEXT NOT NULL,
  expires_at TEXT NOT NULL,
  created_at TEXT NOT NULL
);
"""


def utc_now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def new_id() -> str:
    return uuid.uuid4().hex


def db_path_from_url(url: str) -> str:
    if not url.startswith("sqlite:///"):
        raise RuntimeError(f"DATABASE_URL must be sqlite:///...; got {url!r}")
    # works for Windows paths like C:/... and POSIX /...
    return url[len("sqlite:///") :]


def _loads_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(v) for v in data] if isinstance(data, list) else []


def dumps_list(values: list[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def row_to_company(row: sqlite3.Row) -> Company:
    return Company(
        id=row["id"],
        name=row["name"],
        industry=_loads_list(row["industry"]),
        email=_loads_list(row["email"]),
        phone=_loads_list(row["phone"]),
        city=row["city"],
        state=row["state"],
        website=row["website"],
        external_id=row["external_id"],
        revenue=row["revenue"],
        status=CompanyStatus(row["status"]),
        sic_codes=row["sic_codes"],
        naics_codes=row["naics_codes"],
        primary_industry=row["primary_industry"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_contact(row: sqlite3.Row) -> Contact:
    return Contact(
        id=row["id"],
        company_id=row["company_id"],
        external_id=int(row["external_id"]),
        name=row["name"],
        status=ContactStatus(row["status"]),
        first_name=row["first_name"],
        middle_name=row["middle_name"],
        last_name=row["last_name"],
        title=row["title"],
        email=row["email"],
        phone=row["phone"],
        accuracy_score=row["accuracy_score"],
        email_subject=row["email_subject"],
        email_body=row["email_body"],
        text_message=row["text_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class Store:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @classmethod
    def from_url(cls, url: str) -> Store:
        return cls(db_path_from_url(url))

    # -------------------- connections --------------------

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys=ON")
        return con

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolling back on any exception."""
        con = self._connect()
        try:
            con.execute("BEGIN IMMEDIATE")
            try:
                yield con
            except BaseException:
                con.execute("ROLLBACK")
                raise
            con.execute("COMMIT")
        finally:
            con.close()

    def init_schema(self) -> None:
        con = self._connect()
        try:
            con.execute("PRAGMA journal_mode=WAL")
            con.executescript(SCHEMA)
        finally:
            con.close()

    # -------------------- companies --------------------

    def get_company(self, company_id: str) -> Company | None:
        with self.read() as con:
            row = con.execute("SELECT * FROM companies WHERE id = ?", (company_id,)).fetchone()
        return row_to_company(row) if row else None

    def list_companies(self, status: CompanyStatus | None = None) -> list[Company]:
        with self.read() as con:
            if status is None:
                rows = con.execute("SELECT * FROM companies ORDER BY created_at").fetchall()
            else:
                rows = con.execute(
                    "SELECT * FROM companies WHERE status = ? ORDER BY created_at",
                    (CompanyStatus(status).value,),
                ).fetchall()
        return [row_to_company(r) for r in rows]

    def update_company_status(
        self,
        company_id: str,
        status: CompanyStatus,
        *,
        external_id: int | None = None,
        revenue: int | None = None,
        sic_codes: str | None = None,
        naics_codes: str | None = None,
        primary_industry: str | None = None,
    ) -> None:
        """
        Move a company to `status` and record enrichment outputs.

        Optional fields are only written when not None so a failure-path
        transition never blanks data learned earlier.
        """
        with self.transaction() as con:
            previous = _set_company_status(
                con,
                company_id,
                status,
                external_id=external_id,
                revenue=revenue,
                sic_codes=sic_codes,
                naics_codes=naics_codes,
                primary_industry=primary_industry,
            )
        log.info(
            "company %s status %s -> %s", company_id, previous, CompanyStatus(status).value
        )

    def finish_enrichment(
        self,
        company_id: str,
        contacts: list[Contact],
        status: CompanyStatus,
        **fields: Any,
    ) -> list[Contact] | None:
        """
        Store a company's contacts and its post-enrichment status atomically.

        Returns None, writing nothing, when the company has already left
        `enriching` (a duplicate delivery finished first).
        """
        with self.transaction() as con:
            row = con.execute("SELECT status FROM companies WHERE id = ?", (company_id,)).fetchone()
            if row is None:
                raise KeyError(f"company {company_id} not found")
            if row["status"] != CompanyStatus.ENRICHING.value:
                log.info("company %s already %s; enrichment result dropped", company_id, row["status"])
                return None
            stored = [_upsert_contact(con, c) for c in contacts]
            _set_company_status(con, company_id, status, **fields)
        log.info(
            "company %s status %s -> %s",
            company_id,
            CompanyStatus.ENRICHING.value,
            CompanyStatus(status).value,
        )
        return stored

    # -------------------- contacts --------------------

    def get_contact_by_external_id(self, external_id: int) -> Contact | None:
        with self.read() as con:
            row = con.execute(
                "SELECT * FROM contacts WHERE external_id = ?", (int(external_id),)
            ).fetchone()
        return row_to_contact(row) if row else None

    def list_contacts(self, company_id: str) -> list[Contact]:
        with self.read() as con:
            rows = con.execute(
                "SELECT * FROM contacts WHERE company_id = ? ORDER BY created_at",
                (company_id,),
            ).fetchall()
        return [row_to_contact(r) for r in rows]

    def upsert_contact(self, contact: Contact) -> Contact:
        """
        Insert or refresh a contact keyed by its directory id.

        A contact whose stored status is terminal is returned unchanged;
        enrichment reruns never reopen a contact that was already handled.
        For a live contact the details are refreshed, but a status change the
        transition table forbids is logged and the stored status is kept.
        """
        with self.transaction() as con:
            return _upsert_contact(con, contact)

    def update_contact_status(
        self,
        contact_id: str,
        status: ContactStatus,
        *,
        email_subject: str | None = None,
        email_body: str | None = None,
        text_message: str | None = None,
    ) -> None:
        sets: dict[str, Any] = {"status": ContactStatus(status).value, "updated_at": utc_now_iso()}
        if email_subject:
            sets["email_subject"] = email_subject
        if email_body:
            sets["email_body"] = email_body
        if text_message:
            sets["text_message"] = text_message

        with self.transaction() as con:
            row = con.execute("SELECT status FROM contacts WHERE id = ?", (contact_id,)).fetchone()
            if row is None:
                raise KeyError(f"contact {contact_id} not found")
            check_contact_transition(row["status"], status)
            assignments = ", ".join(f"{col} = ?" for col in sets)
            con.execute(
                f"UPDATE contacts SET {assignments} WHERE id = ?",
                [*sets.values(), contact_id],
            )
        log.info(
            "contact %s status %s -> %s", contact_id, row["status"], ContactStatus(status).value
        )

    # -------------------- vehicle photos --------------------

    def add_photo(self, image_path: str, location: str | None = None) -> None:
        with self.transaction() as con:
            con.execute(
                """
                INSERT INTO vehicle_photos (image_path, location, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(image_path) DO UPDATE
                SET location = COALESCE(excluded.location, vehicle_photos.location)
                """,
                (image_path, location, utc_now_iso()),
            )

    def attach_photo(self, image_path: str, company_id: str) -> None:
        with self.transaction() as con:
            con.execute(
                """
                INSERT INTO vehicle_photos (image_path, company_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(image_path) DO UPDATE SET company_id = excluded.company_id
                """,
                (image_path, company_id, utc_now_iso()),
            )

    def get_photo(self, image_path: str) -> VehiclePhoto | None:
        with self.read() as con:
            row = con.execute(
                "SELECT * FROM vehicle_photos WHERE image_path = ?", (image_path,)
            ).fetchone()
        if row is None:
            return None
        return VehiclePhoto(
            image_path=row["image_path"],
            company_id=row["company_id"],
            location=row["location"],
            created_at=row["created_at"],
        )

    def photo_locations(self, company_id: str) -> list[str]:
        """Non-empty photo locations for a company, oldest first."""
        with self.read() as con:
            rows = con.execute(
                """
                SELECT location FROM vehicle_photos
                WHERE company_id = ? AND location IS NOT NULL AND location != ''
                ORDER BY created_at
                """,
                (company_id,),
            ).fetchall()
        return [r["location"] for r in rows]

    # -------------------- directory auth tokens --------------------

    def latest_token(self) -> tuple[str, str] | None:
        with self.read() as con:
            row = con.execute(
                "SELECT token, expires_at FROM directory_auth ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return (row["token"], row["expires_at"]) if row else None

    def save_token(self, token: str, expires_at: str) -> None:
        with self.transaction() as con:
            con.execute(
                "INSERT INTO directory_auth (token, expires_at, created_at) VALUES (?, ?, ?)",
                (token, expires_at, utc_now_iso()),
            )


# ---------------------------------------------------------------------------
# Writes shared by single-row methods and multi-row transactions
# ---------------------------------------------------------------------------


def _set_company_status(
    con: sqlite3.Connection,
    company_id: str,
    status: CompanyStatus,
    *,
    external_id: int | None = None,
    revenue: int | None = None,
    sic_codes: str | None = None,
    naics_codes: str | None = None,
    primary_industry: str | None = None,
) -> str:
    """Checked status write inside an open transaction; returns the old status."""
    sets: dict[str, Any] = {"status": CompanyStatus(status).value, "updated_at": utc_now_iso()}
    if external_id is not None:
        sets["external_id"] = int(external_id)
    if revenue is not None:
        sets["revenue"] = int(revenue)
    if sic_codes:
        sets["sic_codes"] = sic_codes
    if naics_codes:
        sets["naics_codes"] = naics_codes
    if primary_industry:
        sets["primary_industry"] = primary_industry

    row = con.execute("SELECT status FROM companies WHERE id = ?", (company_id,)).fetchone()
    if row is None:
        raise KeyError(f"company {company_id} not found")
    check_company_transition(row["status"], status)
    assignments = ", ".join(f"{col} = ?" for col in sets)
    con.execute(
        f"UPDATE companies SET {assignments} WHERE id = ?",
        [*sets.values(), company_id],
    )
    return row["status"]


def _upsert_contact(con: sqlite3.Connection, contact: Contact) -> Contact:
    now = utc_now_iso()
    row = con.execute(
        "SELECT * FROM contacts WHERE external_id = ?", (int(contact.external_id),)
    ).fetchone()
    if row is not None:
        existing = row_to_contact(row)
        if existing.status in TERMINAL_CONTACT_STATUSES:
            log.info(
                "contact %s already %s; leaving untouched",
                existing.external_id,
                existing.status.value,
            )
            return existing
        status = ContactStatus(contact.status)
        if status != existing.status:
            try:
                check_contact_transition(existing.status, status)
            except InvalidStatusTransition:
                log.warning(
                    "contact %s is %s; ignoring re-enrichment status %s",
                    existing.external_id,
                    existing.status.value,
                    status.value,
                )
                status = existing.status
        con.execute(
            """
            UPDATE contacts
            SET company_id = ?, name = ?, first_name = ?, middle_name = ?,
                last_name = ?, title = ?, email = ?, phone = ?,
                accuracy_score = ?, status = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                contact.company_id,
                contact.name,
                contact.first_name,
                contact.middle_name,
                contact.last_name,
                contact.title,
                contact.email,
                contact.phone,
                contact.accuracy_score,
                status.value,
                now,
                existing.id,
            ),
        )
        contact_id = existing.id
    else:
        contact_id = contact.id or new_id()
        con.execute(
            """
            INSERT INTO contacts (
              id, company_id, external_id, name, first_name, middle_name,
              last_name, title, email, phone, accuracy_score, status,
              created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                contact_id,
                contact.company_id,
                int(contact.external_id),
                contact.name,
                contact.first_name,
                contact.middle_name,
                contact.last_name,
                contact.title,
                contact.email,
                contact.phone,
                contact.accuracy_score,
                ContactStatus(contact.status).value,
                now,
                now,
            ),
        )
    out = con.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
    return row_to_contact(out)


__all__ = [
    "SCHEMA",
    "Store",
    "utc_now_iso",
    "new_id",
    "db_path_from_url",
    "dumps_list",
    "row_to_company",
    "row_to_contact",
]
