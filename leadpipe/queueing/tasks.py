# leadpipe/queueing/tasks.py
"""
RQ jobs that run pipeline stages in the background.

The HTTP trigger endpoint only enqueues `run_stage_job`; an RQ worker runs
the batch. A failed job is not retried by RQ: the stage's own messages
reappear after their visibility timeout and the next trigger picks them up.
"""

from __future__ import annotations

import logging
from typing import Any

from redis import Redis
from rq import Queue

from leadpipe.config import STAGES, AppConfig, load_settings
from leadpipe.queueing.redis_conn import get_redis
from leadpipe.stages import run_stage

log = logging.getLogger(__name__)


def run_stage_job(stage: str) -> dict[str, Any]:
    cfg = load_settings()
    summary = run_stage(cfg, stage)
    return summary.to_dict()


def enqueue_stage_run(stage: str, *, cfg: AppConfig | None = None, redis: Redis | None = None) -> str:
    """Queue one batch run of `stage`; returns the RQ job id."""
    if stage not in STAGES:
        raise ValueError(f"Unknown stage {stage!r}; expected one of {STAGES}")
    cfg = cfg or load_settings()
    conn = redis if redis is not None else get_redis(cfg.queue.redis_url)
    q = Queue(cfg.queue.rq_queue, connection=conn)
    job = q.enqueue(
        run_stage_job,
        stage,
        job_timeout=cfg.pipeline.job_timeout_seconds,
        description=f"run {stage}",
        meta={"stage": stage},
    )
    log.info("enqueued %s run as job %s on %s", stage, job.id, cfg.queue.rq_queue)
    return job.id


__all__ = ["run_stage_job", "enqueue_stage_run"]
