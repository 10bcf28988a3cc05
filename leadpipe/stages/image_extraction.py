# leadpipe/stages/image_extraction.py
"""
image-processing queue -> company records.

Payload: {"image_path": "<object storage path>"}

prepare  signs one URL per photo (a signing failure fails the whole batch)
process  OCR -> LLM extraction -> resolver upsert -> attach photo; a newly
         inserted company is sent on to contact enrichment
failure  nothing owns the photo yet, so the message is only archived
"""

from __future__ import annotations

import logging
from typing import Any

from leadpipe.config import STAGE_IMAGE_EXTRACTION
from leadpipe.db import Store
from leadpipe.exceptions import DataError
from leadpipe.ingest.resolver import upsert_company
from leadpipe.models import CompanyCandidate
from leadpipe.queueing.pgq import Pgq, QueueMessage
from leadpipe.queueing.runner import PROCESSED, SKIPPED
from leadpipe.queueing.trigger import StageTrigger
from leadpipe.services.llm import LLMClient
from leadpipe.services.ocr import VisionOcr
from leadpipe.services.prompts import EXTRACTION_SYSTEM, extraction_prompt, parse_company
from leadpipe.services.storage import SignedUrlStorage

log = logging.getLogger(__name__)


def _image_path(message: QueueMessage) -> str | None:
    path = message.message.get("image_path")
    if isinstance(path, str) and path.strip():
        return path.strip()
    return None


class ImageExtractionStage:
    name = STAGE_IMAGE_EXTRACTION

    def __init__(
        self,
        *,
        store: Store,
        pgq: Pgq,
        trigger: StageTrigger,
        storage: SignedUrlStorage,
        ocr: VisionOcr,
        llm: LLMClient,
        queue: str,
        next_queue: str,
        model: str,
    ) -> None:
        self.store = store
        self.pgq = pgq
        self.trigger = trigger
        self.storage = storage
        self.ocr = ocr
        self.llm = llm
        self.queue = queue
        self.next_queue = next_queue
        self.model = model

    def prepare(self, messages: list[QueueMessage]) -> dict[int, str]:
        urls: dict[int, str] = {}
        for m in messages:
            path = _image_path(m)
            if path:
                urls[m.msg_id] = self.storage.signed_url(path)
        return urls

    def process(self, message: QueueMessage, prepared: dict[int, Any]) -> str:
        path = _image_path(message)
        if path is None:
            raise DataError(f"message {message.msg_id} has no image_path")
        url = prepared[message.msg_id]

        text = self.ocr.extract_text(url)
        if not text.strip():
            raise DataError(f"no text detected in {path}")

        raw = self.llm.complete(
            extraction_prompt(text), model=self.model, system=EXTRACTION_SYSTEM, json_mode=True
        )
        parsed = parse_company(raw)
        if not parsed.has_identity():
            raise DataError(f"no company name, email or phone found in {path}")

        candidate = CompanyCandidate(
            name=parsed.name or "",
            industry=parsed.industry,
            email=parsed.email,
            phone=parsed.phone,
            city=parsed.city,
            state=parsed.state,
            website=parsed.website,
        )
        result = upsert_company(self.store, candidate)
        if result.company_id:
            self.store.attach_photo(path, result.company_id)

        if result.skipped:
            log.info("%s: %s (%s)", path, result.reason, result.company_id)
            return SKIPPED

        if result.was_insert:
            self.pgq.send(self.next_queue, {"company_id": result.company_id})
            self.trigger.notify(self.next_queue)
        return PROCESSED

    def on_failure(self, message: QueueMessage, exc: BaseException) -> None:
        log.info(
            "image %s not extracted; archiving without entity update",
            _image_path(message) or f"<msg {message.msg_id}>",
        )


__all__ = ["ImageExtractionStage"]
