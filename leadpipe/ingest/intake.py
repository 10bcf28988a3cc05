# leadpipe/ingest/intake.py
from __future__ import annotations

import logging

from leadpipe.exceptions import DataError
from leadpipe.stages import PipelineContext

log = logging.getLogger(__name__)


def enqueue_image(ctx: PipelineContext, image_path: str, location: str | None = None) -> int:
    """
    Register a stored vehicle photo and queue it for extraction.

    `location` is the free-text address from the photo's metadata; it later
    supplies the postal code for directory search and the street name used
    in outreach. Returns the queue message id.
    """
    path = (image_path or "").strip().lstrip("/")
    if not path:
        raise DataError("image_path is required")
    location = (location or "").strip() or None

    ctx.store.add_photo(path, location)
    queue = ctx.cfg.queue.image_queue
    (msg_id,) = ctx.pgq.send(queue, {"image_path": path})
    log.info("queued image %s as message %s", path, msg_id, extra={"image_path": path})
    ctx.trigger.notify(queue)
    return msg_id


__all__ = ["enqueue_image"]
