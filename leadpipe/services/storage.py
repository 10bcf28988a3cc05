# leadpipe/services/storage.py
"""
Expiring, HMAC-signed URLs for photos held in object storage.

A signed URL looks like

    {public_base_url}/{path}?expires=<epoch>&signature=<hex>

where signature = HMAC-SHA256(secret, "{path}:{expires}"). The OCR service
fetches the image through this URL, so the pipeline itself never handles
image bytes.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Callable
from urllib.parse import quote, urlencode

from leadpipe.config import StorageConfig
from leadpipe.exceptions import ConfigError


def _sign(secret: str, path: str, expires: int) -> str:
    msg = f"{path}:{expires}".encode()
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


class SignedUrlStorage:
    def __init__(self, cfg: StorageConfig, *, clock: Callable[[], float] = time.time) -> None:
        self.cfg = cfg
        self.clock = clock

    def _require(self) -> tuple[str, str]:
        if not self.cfg.public_base_url or not self.cfg.signing_secret:
            raise ConfigError("STORAGE_PUBLIC_BASE_URL / STORAGE_SIGNING_SECRET are not set")
        return self.cfg.public_base_url.rstrip("/"), self.cfg.signing_secret

    def signed_url(self, path: str, ttl_seconds: int | None = None) -> str:
        base, secret = self._require()
        path = path.lstrip("/")
        if not path:
            raise ValueError("cannot sign an empty storage path")
        ttl = self.cfg.signed_url_ttl_seconds if ttl_seconds is None else ttl_seconds
        expires = int(self.clock()) + max(1, int(ttl))
        query = urlencode({"expires": expires, "signature": _sign(secret, path, expires)})
        return f"{base}/{quote(path)}?{query}"

    def verify(self, path: str, expires: int, signature: str) -> bool:
        _, secret = self._require()
        if int(expires) < int(self.clock()):
            return False
        expected = _sign(secret, path.lstrip("/"), int(expires))
        return hmac.compare_digest(expected, signature)


__all__ = ["SignedUrlStorage"]
