# leadpipe/queueing/trigger.py
from __future__ import annotations

import logging

import httpx

from leadpipe.config import QueueConfig, TriggerConfig
from leadpipe.exceptions import QueueError
from leadpipe.queueing.pgq import Pgq

log = logging.getLogger(__name__)


class StageTrigger:
    """
    Kick a stage's batch run once its queue is deep enough.

    The POST goes to `{STAGE_INVOKE_BASE_URL}/stages/{stage}/trigger`, which
    only enqueues the run and answers 202, so a short timeout is enough and
    the caller never waits for the batch itself. Every failure is logged and
    swallowed; the next enqueue re-checks the depth and tries again.
    """

    def __init__(
        self,
        pgq: Pgq,
        cfg: TriggerConfig,
        queues: QueueConfig,
        http: httpx.Client | None = None,
    ) -> None:
        self.pgq = pgq
        self.cfg = cfg
        self.queues = queues
        self.http = http

    def notify(self, queue: str) -> bool:
        """Return True when an invocation request was accepted."""
        stage = self.queues.stage_for(queue)
        if stage is None:
            log.warning("trigger: no stage consumes queue %s", queue)
            return False
        if not self.cfg.invoke_base_url:
            log.debug("trigger: STAGE_INVOKE_BASE_URL not set; not invoking %s", stage)
            return False

        try:
            depth = self.pgq.depth(queue)
        except QueueError as exc:
            log.warning("trigger: depth check on %s failed: %s", queue, exc)
            return False

        threshold = self.cfg.threshold_for(queue)
        if depth < threshold:
            log.debug("trigger: %s depth %d below threshold %d", queue, depth, threshold)
            return False

        url = f"{self.cfg.invoke_base_url}/stages/{stage}/trigger"
        headers = {}
        if self.cfg.service_api_key:
            headers["Authorization"] = f"Bearer {self.cfg.service_api_key}"

        try:
            if self.http is not None:
                resp = self.http.post(url, headers=headers, timeout=self.cfg.timeout_seconds)
            else:
                resp = httpx.post(url, headers=headers, timeout=self.cfg.timeout_seconds)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("trigger: invoking %s failed: %s", stage, exc)
            return False

        log.info(
            "trigger: invoked %s (queue %s depth %d >= %d)",
            stage,
            queue,
            depth,
            threshold,
            extra={"stage": stage, "depth": depth},
        )
        return True


__all__ = ["StageTrigger"]
