# leadpipe/stages/contact_enrichment.py
"""
contact-enrichment queue -> contacts, company firmographics.

Payload: {"company_id": "<id>", "external_id": <directory id, optional>}

A provided external_id skips the directory company search (operator
override). Companies no longer in `enriching` are redeliveries and are
acknowledged without work.
"""

from __future__ import annotations

import logging
from typing import Any

from leadpipe.config import STAGE_CONTACT_ENRICHMENT
from leadpipe.db import Store, new_id
from leadpipe.enrich.contacts import ContactEnricher, EnrichedContact
from leadpipe.exceptions import DataError
from leadpipe.models import Company, CompanyStatus, Contact, ContactStatus
from leadpipe.queueing.pgq import Pgq, QueueMessage
from leadpipe.queueing.runner import PROCESSED, SKIPPED
from leadpipe.queueing.trigger import StageTrigger
from leadpipe.search.progressive import ProgressiveSearch, extract_postal_code

log = logging.getLogger(__name__)


def _company_id(message: QueueMessage) -> str:
    company_id = message.message.get("company_id")
    if not company_id:
        raise DataError(f"message {message.msg_id} has no company_id")
    return str(company_id)


def _override_id(message: QueueMessage) -> int | None:
    raw = message.message.get("external_id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise DataError(f"message {message.msg_id} has a non-numeric external_id {raw!r}") from exc


def _to_contact(company_id: str, person: EnrichedContact) -> Contact:
    return Contact(
        id=new_id(),
        company_id=company_id,
        external_id=person.external_id,
        name=person.name,
        status=person.status,
        first_name=person.first_name,
        middle_name=person.middle_name,
        last_name=person.last_name,
        title=person.title,
        email=person.email,
        phone=person.phone,
        accuracy_score=person.accuracy_score,
    )


class ContactEnrichmentStage:
    name = STAGE_CONTACT_ENRICHMENT

    def __init__(
        self,
        *,
        store: Store,
        pgq: Pgq,
        trigger: StageTrigger,
        search: ProgressiveSearch,
        enricher: ContactEnricher,
        queue: str,
        next_queue: str,
    ) -> None:
        self.store = store
        self.pgq = pgq
        self.trigger = trigger
        self.search = search
        self.enricher = enricher
        self.queue = queue
        self.next_queue = next_queue

    def prepare(self, messages: list[QueueMessage]) -> None:
        return None

    def _location_hint(self, company: Company) -> str | None:
        locations = self.store.photo_locations(company.id)
        for loc in locations:
            if extract_postal_code(loc):
                return loc
        return None

    def process(self, message: QueueMessage, prepared: Any) -> str:
        company_id = _company_id(message)
        company = self.store.get_company(company_id)
        if company is None:
            raise DataError(f"company {company_id} not found")
        if company.status != CompanyStatus.ENRICHING:
            log.info("company %s already %s; skipping", company_id, company.status.value)
            return SKIPPED

        external_id = _override_id(message)
        if external_id is None:
            external_id = self.search.resolve_company(
                company.name,
                state=company.state,
                website=company.website,
                location_hint=self._location_hint(company),
            )
        if external_id is None:
            if self.store.finish_enrichment(company_id, [], CompanyStatus.NOT_FOUND) is None:
                return SKIPPED
            return PROCESSED

        result = self.enricher.enrich(external_id)

        stored = self.store.finish_enrichment(
            company_id,
            [_to_contact(company_id, person) for person in result.contacts],
            result.company_status,
            external_id=external_id,
            revenue=result.revenue,
            sic_codes=result.sic_codes,
            naics_codes=result.naics_codes,
            primary_industry=result.primary_industry,
        )
        if stored is None:
            return SKIPPED

        # enqueue only once contacts and company status are committed
        payloads = [
            {"contact_external_id": c.external_id}
            for c in stored
            if c.status == ContactStatus.GENERATING_MESSAGE
        ]
        if payloads:
            self.pgq.send_batch(self.next_queue, payloads)
            self.trigger.notify(self.next_queue)
        log.info(
            "company %s enriched: %s, %d contact(s), %d queued for messages",
            company_id,
            result.company_status.value,
            len(result.contacts),
            len(payloads),
            extra={"company_id": company_id, "external_id": external_id},
        )
        return PROCESSED

    def on_failure(self, message: QueueMessage, exc: BaseException) -> None:
        company_id = message.message.get("company_id")
        if not company_id:
            return
        company = self.store.get_company(str(company_id))
        if company is None or company.status != CompanyStatus.ENRICHING:
            return
        self.store.update_company_status(company.id, CompanyStatus.CONTACTS_FAILED)


__all__ = ["ContactEnrichmentStage"]
