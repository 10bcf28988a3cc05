# leadpipe/search/progressive.py
"""
Progressive company search against the B2B directory.

Strategies run in order, each a narrowing filter on the same search
endpoint. Strategies whose inputs are unknown are not run at all.

    1. companyName
    2. companyName, state                                        state known
    3. companyName, companyWebsite           (+ state)           website known
    4. companyName, zipCode, radius=wide                         postal code known
    5. companyName, zipCode, radius=narrow                       postal code known

The name-only search always runs first; state is never added to it.

Per strategy:
    0 results             -> next strategy
    1 result              -> return it
    >1, final strategy    -> return the first result
    >1, earlier strategy  -> remember as a fallback, next strategy

After the last strategy the best fallback (fewest results, earliest on ties)
supplies its first result. An adapter error is logged and skipped unless it
happens on the final strategy, where it propagates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

from leadpipe.exceptions import DataError, TransientError
from leadpipe.services.directory import SearchResponse

log = logging.getLogger(__name__)

_US_ZIP_RE = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


class CompanySearcher(Protocol):
    def search_companies(self, filters: dict[str, Any]) -> SearchResponse: ...


def extract_postal_code(location: str | None) -> str | None:
    """
    Pull a US ZIP out of a postal code or a free-text address.

    "80202"                          -> "80202"
    "1600 Main St, Denver, CO 80202" -> "80202"
    "80202-1234"                     -> "80202"

    The last ZIP-shaped token wins so that house numbers never do.
    """
    if not location:
        return None
    matches = _US_ZIP_RE.findall(location)
    return matches[-1] if matches else None


@dataclass
class _Fallback:
    strategy: int
    total_results: int
    first_id: int


def _first_id(resp: SearchResponse) -> int:
    try:
        return int(resp.data[0]["id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise DataError(f"directory search result has no usable id: {resp.data[0]!r}") from exc


class ProgressiveSearch:
    def __init__(
        self,
        directory: CompanySearcher,
        *,
        wide_radius_miles: int = 50,
        narrow_radius_miles: int = 10,
    ) -> None:
        self.directory = directory
        self.wide_radius_miles = wide_radius_miles
        self.narrow_radius_miles = narrow_radius_miles

    def strategies(
        self,
        name: str,
        state: str | None = None,
        website: str | None = None,
        location_hint: str | None = None,
    ) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = [{"companyName": name}]
        if state:
            out.append({"companyName": name, "state": state})
        if website:
            narrowed: dict[str, Any] = {"companyName": name, "companyWebsite": website}
            if state:
                narrowed["state"] = state
            out.append(narrowed)

        zip_code = extract_postal_code(location_hint)
        if zip_code:
            for radius in (self.wide_radius_miles, self.narrow_radius_miles):
                out.append(
                    {"companyName": name, "zipCode": zip_code, "zipCodeRadiusMiles": radius}
                )
        return out

    def resolve_company(
        self,
        name: str,
        state: str | None = None,
        website: str | None = None,
        location_hint: str | None = None,
    ) -> int | None:
        if not name or not name.strip():
            raise DataError("cannot search the directory without a company name")

        plan = self.strategies(name.strip(), state, website, location_hint)
        last = len(plan) - 1
        best: _Fallback | None = None

        for i, filters in enumerate(plan):
            n = i + 1
            try:
                resp = self.directory.search_companies(filters)
            except TransientError as exc:
                if i == last:
                    raise
                log.warning("search strategy %d failed: %s; trying next", n, exc)
                continue

            total = resp.total_results if resp.data else 0
            if total == 0:
                log.info("search strategy %d: no results", n)
                continue

            if total == 1:
                external_id = _first_id(resp)
                log.info("search strategy %d: single match %s", n, external_id)
                return external_id

            if i == last:
                external_id = _first_id(resp)
                log.info(
                    "search strategy %d (final): %d results, taking first %s",
                    n,
                    total,
                    external_id,
                )
                return external_id

            log.info("search strategy %d: %d results, narrowing", n, total)
            if best is None or total < best.total_results:
                best = _Fallback(strategy=n, total_results=total, first_id=_first_id(resp))

        if best is not None:
            log.info(
                "search exhausted; falling back to strategy %d (%d results) -> %s",
                best.strategy,
                best.total_results,
                best.first_id,
            )
            return best.first_id

        log.info("search exhausted; %r not found in directory", name)
        return None


__all__ = ["ProgressiveSearch", "CompanySearcher", "extract_postal_code"]
