# leadpipe/queueing/runner.py
"""
One bounded batch from a stage queue: read, prepare, fan out, acknowledge.

    read(queue, vt, batch_size)        failure -> raise, nothing acked
    stage.prepare(messages)            failure -> raise, nothing acked
    stage.process(msg, prepared)       concurrently, one Outcome per message
    ack pass (sequential)
        success -> delete
        error   -> stage.on_failure(msg, exc), then archive

Unacknowledged messages (fail-fast paths, crashed process) reappear after the
visibility timeout. Ack and on_failure problems are logged and never abort
the pass for sibling messages.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from leadpipe.exceptions import QueueError
from leadpipe.queueing.pgq import Pgq, QueueMessage

log = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"


class Stage(Protocol):
    name: str
    queue: str

    def prepare(self, messages: list[QueueMessage]) -> Any: ...

    def process(self, message: QueueMessage, prepared: Any) -> str: ...

    def on_failure(self, message: QueueMessage, exc: BaseException) -> None: ...


@dataclass
class Outcome:
    message: QueueMessage
    result: str | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    stage: str
    read: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    acked: int = 0
    archived: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def status(self) -> str:
        if self.read == 0:
            return "empty"
        return "ok" if self.failed == 0 else "partial"

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status,
            "read": self.read,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "acked": self.acked,
            "archived": self.archived,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class BatchRunner:
    def __init__(
        self,
        stage: Stage,
        pgq: Pgq,
        *,
        batch_size: int = 5,
        vt_seconds: int = 60,
        max_workers: int | None = None,
    ) -> None:
        self.stage = stage
        self.pgq = pgq
        self.batch_size = batch_size
        self.vt_seconds = vt_seconds
        self.max_workers = max_workers or batch_size

    def run(self) -> BatchSummary:
        started = time.monotonic()
        summary = BatchSummary(stage=self.stage.name)

        messages = self.pgq.read(self.stage.queue, self.vt_seconds, self.batch_size)
        summary.read = len(messages)
        if not messages:
            log.info("%s: queue %s empty", self.stage.name, self.stage.queue)
            return summary

        log.info(
            "%s: read %d message(s) from %s",
            self.stage.name,
            len(messages),
            self.stage.queue,
            extra={"stage": self.stage.name, "msg_ids": [m.msg_id for m in messages]},
        )

        prepared = self.stage.prepare(messages)
        outcomes = self._fan_out(messages, prepared)
        self._acknowledge(outcomes, summary)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "%s: batch done read=%d processed=%d skipped=%d failed=%d",
            self.stage.name,
            summary.read,
            summary.processed,
            summary.skipped,
            summary.failed,
        )
        return summary

    def _run_one(self, message: QueueMessage, prepared: Any) -> Outcome:
        try:
            return Outcome(message=message, result=self.stage.process(message, prepared))
        except Exception as exc:  # noqa: BLE001 - isolated per item
            return Outcome(message=message, error=exc)

    def _fan_out(self, messages: list[QueueMessage], prepared: Any) -> list[Outcome]:
        workers = max(1, min(self.max_workers, len(messages)))
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"{self.stage.name}-"
        ) as executor:
            futures = [executor.submit(self._run_one, m, prepared) for m in messages]
            return [f.result() for f in futures]

    def _acknowledge(self, outcomes: list[Outcome], summary: BatchSummary) -> None:
        queue = self.stage.queue
        for outcome in outcomes:
            msg = outcome.message
            if outcome.ok:
                if outcome.result == SKIPPED:
                    summary.skipped += 1
                else:
                    summary.processed += 1
                try:
                    if self.pgq.delete(queue, msg.msg_id):
                        summary.acked += 1
                    else:
                        log.warning("%s: message %s already gone on delete", queue, msg.msg_id)
                except QueueError as err:
                    log.error("%s: delete of message %s failed: %s", queue, msg.msg_id, err)
                continue

            exc = outcome.error
            summary.failed += 1
            summary.errors.append(
                {"msg_id": msg.msg_id, "error": f"{type(exc).__name__}: {exc}"}
            )
            log.warning(
                "%s: message %s failed: %s",
                self.stage.name,
                msg.msg_id,
                exc,
                exc_info=exc,
                extra={"stage": self.stage.name, "msg_id": msg.msg_id},
            )
            try:
                self.stage.on_failure(msg, exc)
            except Exception:  # noqa: BLE001
                log.exception("%s: failure handler for message %s raised", self.stage.name, msg.msg_id)
            try:
                if self.pgq.archive(queue, msg.msg_id):
                    summary.archived += 1
                else:
                    log.warning("%s: message %s already gone on archive", queue, msg.msg_id)
            except QueueError as err:
                log.error("%s: archive of message %s failed: %s", queue, msg.msg_id, err)


__all__ = ["BatchRunner", "BatchSummary", "Outcome", "Stage", "PROCESSED", "SKIPPED"]
