from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from jobhunter.db.repo_lookups import (
    find_or_create_category,
    find_or_create_company,
    find_or_create_location,
)


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _nested(hit: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = hit.get(key)
    return v if isinstance(v, dict) else {}


def _to_float(v) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def external_id_of(hit: Dict[str, Any]) -> Optional[str]:
    raw = hit.get("id")
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def parse_datetime(value) -> Optional[datetime]:
    """Parse upstream timestamps ('2024-01-15T10:30:00Z', '2024-01-15')."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(s[:10]), datetime.min.time())
    except ValueError:
        return None


def parse_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    dt = parse_datetime(value)
    return dt.date() if dt else None


def normalized_job_to_dict(hit: Dict[str, Any], *, source: str) -> Dict[str, Any]:
    """Flatten one upstream record; lookup ids are filled in by attach_lookups."""
    company = _nested(hit, "company")
    location = _nested(hit, "location")
    category = _nested(hit, "category")

    created = parse_datetime(hit.get("created"))
    apply_by = parse_date(hit.get("apply_by"))

    return {
        "external_id": external_id_of(hit),
        "title": (hit.get("title") or "").strip(),
        "company_name": (company.get("display_name") or "").strip(),
        "location_name": (location.get("display_name") or "").strip(),
        "latitude": _to_float(hit.get("latitude", location.get("latitude"))),
        "longitude": _to_float(hit.get("longitude", location.get("longitude"))),
        "category_tag": (category.get("tag") or "").strip(),
        "category_label": (category.get("label") or "").strip(),
        "salary_min": _to_float(hit.get("salary_min")),
        "salary_max": _to_float(hit.get("salary_max")),
        "description": hit.get("description") or "",
        "job_url": hit.get("redirect_url") or "",
        "source": source,
        "created_date": created.isoformat() if created else None,
        "apply_by": apply_by.isoformat() if apply_by else None,
        # fields filled later by the store layer
        "company_id": None,
        "location_id": None,
        "category_id": None,
        "date_found": "",
    }


def attach_lookups(con, job: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve company/location/category to ids (find-or-create)."""
    job["company_id"] = find_or_create_company(con, job.get("company_name") or "")
    lat = job.get("latitude")
    lon = job.get("longitude")
    has_coords = lat is not None and lon is not None
    job["location_id"] = find_or_create_location(
        con,
        job.get("location_name") or "",
        latitude=lat if has_coords else None,
        longitude=lon if has_coords else None,
    )
    job["category_id"] = find_or_create_category(
        con,
        job.get("category_tag") or "",
        job.get("category_label") or None,
    )
    job["date_found"] = job.get("date_found") or now_utc_iso()
    return job
