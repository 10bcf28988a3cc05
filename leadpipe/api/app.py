# leadpipe/api/app.py
"""
HTTP surface for stage invocation, photo intake and queue inspection.

    POST /stages/{stage}/run      run one batch inline, return its summary
    POST /stages/{stage}/trigger  enqueue a background run on RQ (202)
    POST /intake/images           register a photo and queue it
    GET  /queues                  live depth and dead-letter count per queue
    GET  /health
"""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from redis import Redis

from leadpipe.api.deps import get_queue_redis, get_settings, require_service_key
from leadpipe.config import STAGES, AppConfig, configure_logging
from leadpipe.exceptions import ConfigError, DataError, PipelineError, QueueError
from leadpipe.ingest.intake import enqueue_image
from leadpipe.queueing.pgq import Pgq
from leadpipe.queueing.tasks import enqueue_stage_run
from leadpipe.stages import build_context, run_stage

log = logging.getLogger(__name__)

configure_logging()

app = FastAPI(title="Lead Pipeline API")


class ImageIntakeRequest(BaseModel):
    image_path: str = Field(min_length=1)
    location: str | None = None


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    """
    JSON error payload with a consistent shape.

    Example:
        { "error": "config_error", "detail": "Missing environment variable(s) ..." }
    """
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def _unknown_stage(stage: str) -> JSONResponse:
    return _error_response(404, "unknown_stage", f"stage must be one of {', '.join(STAGES)}")


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/stages/{stage}/run", dependencies=[Depends(require_service_key)])
def run_stage_inline(
    stage: str,
    cfg: AppConfig = Depends(get_settings),
    redis: Redis = Depends(get_queue_redis),
):
    if stage not in STAGES:
        return _unknown_stage(stage)
    try:
        summary = run_stage(cfg, stage, redis=redis)
    except ConfigError as exc:
        log.error("%s not run: %s", stage, exc)
        return _error_response(500, "config_error", str(exc))
    except PipelineError as exc:
        log.exception("%s batch failed before acknowledgement", stage)
        return _error_response(500, "batch_failed", str(exc))
    return summary.to_dict()


@app.post("/stages/{stage}/trigger", status_code=202, dependencies=[Depends(require_service_key)])
def trigger_stage(
    stage: str,
    cfg: AppConfig = Depends(get_settings),
    redis: Redis = Depends(get_queue_redis),
):
    if stage not in STAGES:
        return _unknown_stage(stage)
    job_id = enqueue_stage_run(stage, cfg=cfg, redis=redis)
    return {"ok": True, "stage": stage, "job_id": job_id}


@app.post("/intake/images", status_code=202, dependencies=[Depends(require_service_key)])
def intake_image(
    body: ImageIntakeRequest,
    cfg: AppConfig = Depends(get_settings),
    redis: Redis = Depends(get_queue_redis),
):
    with build_context(cfg, redis=redis) as ctx:
        try:
            msg_id = enqueue_image(ctx, body.image_path, body.location)
        except DataError as exc:
            return _error_response(400, "invalid_image", str(exc))
        except QueueError as exc:
            log.error("image %s not queued: %s", body.image_path, exc)
            return _error_response(503, "queue_unavailable", str(exc))
    return {"ok": True, "msg_id": msg_id, "queue": cfg.queue.image_queue}


@app.get("/queues", dependencies=[Depends(require_service_key)])
def queue_depths(
    cfg: AppConfig = Depends(get_settings),
    redis: Redis = Depends(get_queue_redis),
):
    pgq = Pgq(redis, prefix=cfg.queue.key_prefix)
    out = {}
    try:
        for stage in STAGES:
            name = cfg.queue.for_stage(stage)
            out[name] = {
                "stage": stage,
                "depth": pgq.depth(name),
                "archived": len(pgq.archived(name)),
            }
    except QueueError as exc:
        return _error_response(503, "queue_unavailable", str(exc))
    return {"queues": out}
