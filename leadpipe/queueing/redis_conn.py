# leadpipe/queueing/redis_conn.py
from __future__ import annotations

from functools import lru_cache

from redis import Redis

from leadpipe.config import load_settings


@lru_cache(maxsize=4)
def _redis_for(url: str) -> Redis:
    # RQ pickles job payloads as bytes, so responses stay undecoded for both
    # RQ and the message queue (which json.loads bytes directly).
    return Redis.from_url(url, decode_responses=False)


def get_redis(url: str | None = None) -> Redis:
    """Connection pool per Redis URL; defaults to RQ_REDIS_URL from settings."""
    return _redis_for(url or load_settings().queue.redis_url)
