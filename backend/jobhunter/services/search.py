"""Search over stored postings.

Geocode the requested location and filter by radius; when geocoding fails,
fall back to substring matching on the location name. Excluded terms and the
created-date range are applied afterwards, then rows are projected into
response records. Whole result sets are cached per parameter tuple.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from jobhunter.db.repo_jobs import find_by_query_and_distance, find_by_query_and_location
from jobhunter.db.repo_lookups import get_category, get_company, get_location
from jobhunter.services.cache import TTLCache
from jobhunter.services.geocoder import Geocoder
from jobhunter.services.mapper import parse_date

logger = logging.getLogger("search")


@dataclass(frozen=True)
class SearchKey:
    query: str
    location: str
    distance: int
    excluded_terms: Optional[str]
    date_from: Optional[date]
    date_to: Optional[date]


@dataclass(frozen=True)
class SearchResultSet:
    count: int
    results: List[Dict[str, Any]] = field(default_factory=list)
    cached: bool = False
    strategy: str = "distance"  # distance|substring

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "results": self.results,
            "cached": self.cached,
            "strategy": self.strategy,
        }


def parse_excluded_terms(excluded_terms: Optional[str]) -> List[str]:
    if not excluded_terms or not excluded_terms.strip():
        return []
    terms = [t.strip().lower() for t in excluded_terms.split(",")]
    return [t for t in terms if t]


def apply_excluded_terms(jobs: List[Dict[str, Any]], excluded_terms: Optional[str]) -> List[Dict[str, Any]]:
    terms = parse_excluded_terms(excluded_terms)
    if not terms:
        return jobs

    kept = []
    for job in jobs:
        title = (job.get("title") or "").lower()
        description = (job.get("description") or "").lower()
        if any(t in title or t in description for t in terms):
            continue
        kept.append(job)
    return kept


def apply_date_range(
    jobs: List[Dict[str, Any]],
    date_from: Optional[date],
    date_to: Optional[date],
) -> List[Dict[str, Any]]:
    if date_from is None and date_to is None:
        return jobs

    kept = []
    for job in jobs:
        job_date = parse_date(job.get("created_date"))
        if job_date is None:
            continue
        if date_from is not None and job_date < date_from:
            continue
        if date_to is not None and job_date > date_to:
            continue
        kept.append(job)
    return kept


class _NameResolver:
    """Per-search memo over the lookup tables (one query per distinct id)."""

    def __init__(self, con):
        self.con = con
        self._memo: Dict[Tuple[str, int], Optional[Dict[str, Any]]] = {}

    def _get(self, kind: str, entity_id: Optional[int]) -> Optional[Dict[str, Any]]:
        if entity_id is None:
            return None
        key = (kind, int(entity_id))
        if key not in self._memo:
            getter = {"company": get_company, "location": get_location, "category": get_category}[kind]
            self._memo[key] = getter(self.con, int(entity_id))
        return self._memo[key]

    def company_name(self, company_id) -> Optional[str]:
        row = self._get("company", company_id)
        return row["name"] if row else None

    def location_name(self, location_id) -> Optional[str]:
        row = self._get("location", location_id)
        return row["display_name"] if row else None

    def category_name(self, category_id) -> Optional[str]:
        row = self._get("category", category_id)
        return row["name"] if row else None


def project_job(job: Dict[str, Any], names: _NameResolver) -> Dict[str, Any]:
    company_name = names.company_name(job.get("company_id"))
    location_name = names.location_name(job.get("location_id"))
    out = {
        "id": job.get("id"),
        "external_id": job.get("external_id"),
        "title": job.get("title"),
        "company_id": job.get("company_id"),
        "company_name": company_name,
        "location_id": job.get("location_id"),
        "location_name": location_name,
        "category_id": job.get("category_id"),
        "category_name": names.category_name(job.get("category_id")),
        "salary_min": job.get("salary_min"),
        "salary_max": job.get("salary_max"),
        "description": job.get("description"),
        "job_url": job.get("job_url"),
        "source": job.get("source"),
        "created_date": job.get("created_date") or None,
        "date_found": job.get("date_found") or None,
        "apply_by": job.get("apply_by") or None,
    }
    # nested shape kept for clients written against the upstream API format
    if company_name is not None:
        out["company"] = {"display_name": company_name}
    if location_name is not None:
        out["location"] = {"display_name": location_name}
    return out


class SearchEngine:
    def __init__(self, con, geocoder: Geocoder, cache: TTLCache):
        self.con = con
        self.geocoder = geocoder
        self.cache = cache

    def search(
        self,
        query: str,
        location: str,
        distance: int,
        excluded_terms: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> SearchResultSet:
        key = SearchKey(
            query=query or "",
            location=location or "",
            distance=int(distance or 0),
            excluded_terms=excluded_terms or None,
            date_from=date_from,
            date_to=date_to,
        )

        # the cache owns its records; callers always get their own copy
        hit = self.cache.get(key)
        if hit is not None:
            logger.info("Search cache hit for %s", key)
            return replace(hit, results=copy.deepcopy(hit.results), cached=True)

        result = self._search_uncached(key)
        self.cache.set(key, replace(result, results=copy.deepcopy(result.results)))
        return result

    def _search_uncached(self, key: SearchKey) -> SearchResultSet:
        coords = self.geocoder.geocode(key.location)
        if coords is not None:
            jobs = find_by_query_and_distance(
                self.con,
                key.query,
                coords.latitude,
                coords.longitude,
                key.distance,
            )
            strategy = "distance"
            logger.info(
                "Found %s jobs within %s miles of %s for query %r",
                len(jobs),
                key.distance,
                coords.display_name,
                key.query,
            )
        else:
            jobs = find_by_query_and_location(self.con, key.query, key.location)
            strategy = "substring"
            logger.info(
                "Geocoding unavailable for %r; substring match found %s jobs for query %r",
                key.location,
                len(jobs),
                key.query,
            )

        if key.excluded_terms:
            jobs = apply_excluded_terms(jobs, key.excluded_terms)
            logger.info("After exclude filtering: %s jobs match", len(jobs))

        if key.date_from is not None or key.date_to is not None:
            jobs = apply_date_range(jobs, key.date_from, key.date_to)
            logger.info("After date filtering: %s jobs match", len(jobs))

        names = _NameResolver(self.con)
        results = [project_job(j, names) for j in jobs]
        return SearchResultSet(count=len(results), results=results, strategy=strategy)
