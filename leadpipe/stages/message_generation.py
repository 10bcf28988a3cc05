# leadpipe/stages/message_generation.py
"""
email-generation queue -> ready_to_send outreach content.

Payload: {"contact_external_id": <directory person id>}

Contacts with an email get an email draft (subject + body); phone-only
contacts get a text message.
"""

from __future__ import annotations

import logging
from typing import Any

from leadpipe.config import STAGE_MESSAGE_GENERATION, OutreachConfig
from leadpipe.db import Store
from leadpipe.exceptions import DataError
from leadpipe.models import Contact, ContactStatus
from leadpipe.queueing.pgq import QueueMessage
from leadpipe.queueing.runner import PROCESSED, SKIPPED
from leadpipe.services.llm import LLMClient
from leadpipe.services.prompts import (
    OUTREACH_SYSTEM,
    email_prompt,
    parse_email_draft,
    primary_industry,
    text_prompt,
)

log = logging.getLogger(__name__)


def _external_id(message: QueueMessage) -> int:
    raw = message.message.get("contact_external_id")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise DataError(f"message {message.msg_id} has no usable contact_external_id") from exc


class MessageGenerationStage:
    name = STAGE_MESSAGE_GENERATION

    def __init__(
        self,
        *,
        store: Store,
        llm: LLMClient,
        outreach: OutreachConfig,
        queue: str,
        model: str,
    ) -> None:
        self.store = store
        self.llm = llm
        self.outreach = outreach
        self.queue = queue
        self.model = model

    def prepare(self, messages: list[QueueMessage]) -> None:
        return None

    def _load(self, message: QueueMessage) -> Contact:
        external_id = _external_id(message)
        contact = self.store.get_contact_by_external_id(external_id)
        if contact is None:
            raise DataError(f"contact {external_id} not found")
        return contact

    def process(self, message: QueueMessage, prepared: Any) -> str:
        contact = self._load(message)
        if contact.status != ContactStatus.GENERATING_MESSAGE:
            log.info("contact %s already %s; skipping", contact.external_id, contact.status.value)
            return SKIPPED
        if not contact.email and not contact.phone:
            raise DataError(f"contact {contact.external_id} has neither email nor phone")

        company = self.store.get_company(contact.company_id)
        if company is None:
            raise DataError(f"company {contact.company_id} of contact {contact.external_id} missing")
        locations = self.store.photo_locations(company.id)

        prompt_args = {
            "contact_name": contact.first_name or contact.name or "Business Owner",
            "company_name": company.name,
            "industry": primary_industry(company.industry, company.primary_industry),
            "location": locations[0] if locations else None,
        }

        if contact.email:
            raw = self.llm.complete(
                email_prompt(self.outreach, **prompt_args),
                model=self.model,
                system=OUTREACH_SYSTEM,
                json_mode=True,
            )
            draft = parse_email_draft(raw)
            self.store.update_contact_status(
                contact.id,
                ContactStatus.READY_TO_SEND,
                email_subject=draft.subject,
                email_body=draft.body,
            )
        else:
            text = self.llm.complete(
                text_prompt(self.outreach, **prompt_args),
                model=self.model,
                system=OUTREACH_SYSTEM,
            )
            self.store.update_contact_status(
                contact.id, ContactStatus.READY_TO_SEND, text_message=text
            )
        return PROCESSED

    def on_failure(self, message: QueueMessage, exc: BaseException) -> None:
        try:
            contact = self._load(message)
        except DataError:
            return
        if contact.status == ContactStatus.GENERATING_MESSAGE:
            self.store.update_contact_status(contact.id, ContactStatus.FAILED)


__all__ = ["MessageGenerationStage"]
