# leadpipe/stages/__init__.py
"""
Per-invocation wiring for the three pipeline stages.

Every run builds a fresh PipelineContext (store, queue, HTTP client,
adapters, trigger), hands it to a stage, and closes it afterwards. Tests
construct a context around fakeredis and fake adapters instead of patching
module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from redis import Redis

from leadpipe.config import (
    STAGE_CONTACT_ENRICHMENT,
    STAGE_IMAGE_EXTRACTION,
    STAGE_MESSAGE_GENERATION,
    STAGES,
    AppConfig,
    require_stage_credentials,
)
from leadpipe.db import Store
from leadpipe.enrich.contacts import ContactEnricher
from leadpipe.queueing.pgq import Pgq
from leadpipe.queueing.redis_conn import get_redis
from leadpipe.queueing.runner import BatchRunner, BatchSummary
from leadpipe.queueing.trigger import StageTrigger
from leadpipe.search.progressive import ProgressiveSearch
from leadpipe.services.directory import DirectoryAuth, DirectoryClient
from leadpipe.services.llm import LLMClient
from leadpipe.services.ocr import VisionOcr
from leadpipe.services.storage import SignedUrlStorage
from leadpipe.stages.contact_enrichment import ContactEnrichmentStage
from leadpipe.stages.image_extraction import ImageExtractionStage
from leadpipe.stages.message_generation import MessageGenerationStage

log = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    cfg: AppConfig
    store: Store
    pgq: Pgq
    http: httpx.Client
    trigger: StageTrigger
    storage: SignedUrlStorage
    ocr: VisionOcr
    llm: LLMClient
    directory: DirectoryClient

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> PipelineContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def build_context(
    cfg: AppConfig,
    *,
    redis: Redis | None = None,
    http: httpx.Client | None = None,
) -> PipelineContext:
    store = Store.from_url(cfg.db_url)
    store.init_schema()
    if redis is None:
        redis = get_redis(cfg.queue.redis_url)
    pgq = Pgq(redis, prefix=cfg.queue.key_prefix)
    if http is None:
        http = httpx.Client(timeout=httpx.Timeout(cfg.directory.timeout_seconds, connect=5.0))
    auth = DirectoryAuth(store, cfg.directory, http)
    return PipelineContext(
        cfg=cfg,
        store=store,
        pgq=pgq,
        http=http,
        trigger=StageTrigger(pgq, cfg.trigger, cfg.queue, http),
        storage=SignedUrlStorage(cfg.storage),
        ocr=VisionOcr(cfg.ocr, http),
        llm=LLMClient(cfg.llm),
        directory=DirectoryClient(cfg.directory, auth, http),
    )


def build_stage(
    stage: str, ctx: PipelineContext
) -> ImageExtractionStage | ContactEnrichmentStage | MessageGenerationStage:
    cfg = ctx.cfg
    if stage == STAGE_IMAGE_EXTRACTION:
        return ImageExtractionStage(
            store=ctx.store,
            pgq=ctx.pgq,
            trigger=ctx.trigger,
            storage=ctx.storage,
            ocr=ctx.ocr,
            llm=ctx.llm,
            queue=cfg.queue.image_queue,
            next_queue=cfg.queue.contact_queue,
            model=cfg.llm.extraction_model,
        )
    if stage == STAGE_CONTACT_ENRICHMENT:
        return ContactEnrichmentStage(
            store=ctx.store,
            pgq=ctx.pgq,
            trigger=ctx.trigger,
            search=ProgressiveSearch(
                ctx.directory,
                wide_radius_miles=cfg.directory.wide_radius_miles,
                narrow_radius_miles=cfg.directory.narrow_radius_miles,
            ),
            enricher=ContactEnricher(ctx.directory, revenue_min=cfg.pipeline.revenue_min),
            queue=cfg.queue.contact_queue,
            next_queue=cfg.queue.message_queue,
        )
    if stage == STAGE_MESSAGE_GENERATION:
        return MessageGenerationStage(
            store=ctx.store,
            llm=ctx.llm,
            outreach=cfg.outreach,
            queue=cfg.queue.message_queue,
            model=cfg.llm.message_model,
        )
    raise ValueError(f"Unknown stage {stage!r}; expected one of {STAGES}")


def build_runner(stage: str, ctx: PipelineContext) -> BatchRunner:
    return BatchRunner(
        build_stage(stage, ctx),
        ctx.pgq,
        batch_size=ctx.cfg.pipeline.batch_size,
        vt_seconds=ctx.cfg.pipeline.vt_seconds,
        max_workers=ctx.cfg.pipeline.max_workers,
    )


def run_stage(cfg: AppConfig, stage: str, *, redis: Redis | None = None) -> BatchSummary:
    """
    One invocation of `stage`: check credentials, run one batch, clean up.

    ConfigError is raised before the queue is touched; QueueError and
    prepare-step errors propagate with no message acknowledged.
    """
    require_stage_credentials(cfg, stage)
    with build_context(cfg, redis=redis) as ctx:
        return build_runner(stage, ctx).run()


__all__ = [
    "PipelineContext",
    "build_context",
    "build_stage",
    "build_runner",
    "run_stage",
]
