# leadpipe/services/directory.py
"""
B2B directory client (ZoomInfo-shaped REST API).

Endpoints used:

    POST /authenticate        {"username", "password"}     -> {"jwt": "..."}
    POST /search/company      filters                      -> {"totalResults", "data": [...]}
    POST /search/contact      {"companyId", ...}           -> {"totalResults", "data": [...]}
    POST /enrich/contact      {"matchPersonInput", "outputFields"}
                              -> {"data": {"result": [{"data": [person]}]}}

The bearer token is cached in the store (directory_auth). Readers use the
newest unexpired row; when none exists exactly one refresh is made and the
result inserted. Concurrent invocations may both refresh; the newest row wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from leadpipe.config import DirectoryConfig
from leadpipe.db import Store
from leadpipe.exceptions import ConfigError, DirectoryError

log = logging.getLogger(__name__)

# Treat a token as expired slightly early so it never lapses mid-request
TOKEN_EXPIRY_SKEW = timedelta(seconds=30)

ENRICH_OUTPUT_FIELDS: tuple[str, ...] = (
    "id",
    "firstName",
    "middleName",
    "lastName",
    "email",
    "phone",
    "mobilePhone",
    "jobTitle",
    "managementLevel",
    "contactAccuracyScore",
    "companyRevenueNumeric",
    "companySicCodes",
    "companyNaicsCodes",
    "lastUpdatedDate",
)


@dataclass
class SearchResponse:
    total_results: int
    data: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> SearchResponse:
        data = payload.get("data") or []
        if not isinstance(data, list):
            data = []
        total = payload.get("totalResults")
        return cls(total_results=int(total) if total is not None else len(data), data=data)


def _parse_expiry(raw: str) -> datetime | None:
    s = raw.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _looks_like_jwt(token: str) -> bool:
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


class DirectoryAuth:
    def __init__(
        self,
        store: Store,
        cfg: DirectoryConfig,
        http: httpx.Client,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.cfg = cfg
        self.http = http
        self.now = now

    def get_valid_token(self) -> str:
        cached = self.store.latest_token()
        if cached is not None:
            token, expires_raw = cached
            expires_at = _parse_expiry(expires_raw)
            if expires_at is not None and expires_at - TOKEN_EXPIRY_SKEW > self.now():
                return token
        return self.refresh()

    def refresh(self) -> str:
        if not self.cfg.username or not self.cfg.password:
            raise ConfigError("DIRECTORY_USERNAME / DIRECTORY_PASSWORD are not set")

        log.info("requesting new directory access token")
        try:
            resp = self.http.post(
                f"{self.cfg.base_url}/authenticate",
                json={"username": self.cfg.username, "password": self.cfg.password},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise DirectoryError(f"directory authentication failed: {exc}") from exc
        except ValueError as exc:
            raise DirectoryError(f"directory authentication returned invalid JSON: {exc}") from exc

        token = str(data.get("jwt") or data.get("token") or "").strip()
        if not _looks_like_jwt(token):
            raise DirectoryError("directory authentication returned a malformed token")

        expires_at = self.now() + timedelta(seconds=self.cfg.token_ttl_seconds)
        self.store.save_token(token, expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"))
        return token


class DirectoryClient:
    def __init__(self, cfg: DirectoryConfig, auth: DirectoryAuth, http: httpx.Client) -> None:
        self.cfg = cfg
        self.auth = auth
        self.http = http

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        token = self.auth.get_valid_token()
        try:
            resp = self.http.post(
                f"{self.cfg.base_url}{path}",
                json=body,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise DirectoryError(
                f"directory {path} failed: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DirectoryError(f"directory {path} failed: {exc}") from exc
        except ValueError as exc:
            raise DirectoryError(f"directory {path} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise DirectoryError(f"directory {path} returned {type(data).__name__}, expected object")
        return data

    def search_companies(self, filters: dict[str, Any]) -> SearchResponse:
        return SearchResponse.from_json(self._post("/search/company", filters))

    def search_contacts(self, company_id: int, *, rpp: int = 100) -> SearchResponse:
        body = {"companyId": str(company_id), "rpp": rpp}
        return SearchResponse.from_json(self._post("/search/contact", body))

    def enrich_contacts(
        self,
        person_ids: Iterable[int],
        output_fields: Iterable[str] = ENRICH_OUTPUT_FIELDS,
    ) -> list[dict[str, Any]]:
        """Bulk enrichment keyed by person id; returns the first match per input."""
        ids = [int(p) for p in person_ids]
        if not ids:
            return []
        body = {
            "matchPersonInput": [{"personId": pid} for pid in ids],
            "outputFields": list(output_fields),
        }
        data = self._post("/enrich/contact", body)
        results = (data.get("data") or {}).get("result") or []
        people: list[dict[str, Any]] = []
        for result in results:
            matches = result.get("data") or []
            if matches:
                people.append(matches[0])
        return people


__all__ = [
    "ENRICH_OUTPUT_FIELDS",
    "SearchResponse",
    "DirectoryAuth",
    "DirectoryClient",
]
