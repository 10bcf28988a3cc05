# leadpipe/api/deps.py
from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis import Redis

from leadpipe.config import AppConfig, load_settings
from leadpipe.queueing.redis_conn import get_redis

bearer = HTTPBearer(auto_error=False)


def get_settings() -> AppConfig:
    return load_settings()


def get_queue_redis(cfg: AppConfig = Depends(get_settings)) -> Redis:
    return get_redis(cfg.queue.redis_url)


def require_service_key(
    cfg: AppConfig = Depends(get_settings),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> None:
    """
    Bearer-token check against SERVICE_API_KEY.

    When SERVICE_API_KEY is unset, auth is disabled (local dev); otherwise a
    matching `Authorization: Bearer <key>` header is required or 401.
    """
    configured = cfg.trigger.service_api_key
    if not configured:
        return
    supplied = credentials.credentials if credentials else ""
    if not supplied or not hmac.compare_digest(supplied, configured):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing service API key",
        )
