# leadpipe/queueing/worker.py
from __future__ import annotations

import importlib
import logging
import os

from rq import Queue
from rq import SimpleWorker as RQSimpleWorker
from rq import Worker as RQWorker

from leadpipe.config import configure_logging, load_settings
from leadpipe.queueing import tasks as _tasks  # noqa: F401  (job functions must be importable)
from leadpipe.queueing.redis_conn import get_redis

log = logging.getLogger(__name__)


def _stage_failure_handler(job, exc_type, exc_value, tb):
    """Log failed stage runs; returning True lets RQ move the job to its failed registry."""
    stage = (job.meta or {}).get("stage", "?")
    log.error(
        "stage run %s (job %s) failed: %s: %s",
        stage,
        job.id,
        exc_type.__name__,
        exc_value,
        extra={"stage": stage, "job_id": job.id},
    )
    return True


def _select_worker_cls():
    """
    Windows has no fork, so always SimpleWorker there.
    Elsewhere honor RQ_WORKER_CLASS ("module.Class") if set, else rq.Worker.
    """
    env_cls = os.getenv("RQ_WORKER_CLASS", "").strip()
    if os.name == "nt":
        if env_cls and not env_cls.endswith("SimpleWorker"):
            log.warning("Ignoring RQ_WORKER_CLASS=%s on Windows; using rq.SimpleWorker", env_cls)
        return RQSimpleWorker
    if env_cls:
        mod, name = env_cls.rsplit(".", 1)
        return getattr(importlib.import_module(mod), name)
    return RQWorker


def run(*, burst: bool = False) -> None:
    configure_logging()
    cfg = load_settings()

    r = get_redis(cfg.queue.redis_url)
    queue_names = [q.strip() for q in cfg.queue.rq_queue.split(",") if q.strip()]
    queues = [Queue(name, connection=r) for name in queue_names]

    worker_cls = _select_worker_cls()
    log.info(
        "starting %s.%s on queues: %s",
        worker_cls.__module__,
        worker_cls.__name__,
        ", ".join(queue_names),
    )

    w = worker_cls(queues, connection=r, exception_handlers=[_stage_failure_handler])
    w.work(burst=burst)


if __name__ == "__main__":
    run()
