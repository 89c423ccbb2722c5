import json
from typing import Dict, List, Optional

import pytest
import requests

from jobhunter.core.config import get_runtime_config
from jobhunter.db.conn import connect
from jobhunter.db.schema import init_db
from jobhunter.services.fetchers.base import JobSourceClient, SearchParams
from jobhunter.services.geocoder import Coordinates
from jobhunter.services.ingest import IngestionPipeline

AUSTIN = Coordinates(latitude=30.2672, longitude=-97.7431, display_name="Austin, Travis County, Texas")

# one degree of latitude is ~69.05 miles
MILES_PER_LAT_DEGREE = 69.05


def north_of(coords: Coordinates, miles: float) -> tuple:
    return coords.latitude + miles / MILES_PER_LAT_DEGREE, coords.longitude


class FakeJobSource(JobSourceClient):
    """Serves canned pages in order; an Exception entry is raised instead."""

    source_tag = "Adzuna"

    def __init__(self, pages: List):
        self.pages = list(pages)
        self.calls: List[SearchParams] = []

    def build_request(self, params: SearchParams) -> requests.PreparedRequest:
        return requests.Request("GET", f"https://fake.test/search/{params.page}").prepare()

    def execute(self, params: SearchParams) -> Optional[str]:
        self.calls.append(params)
        idx = params.page - 1
        if idx >= len(self.pages):
            return json.dumps({"results": []})
        page = self.pages[idx]
        if isinstance(page, Exception):
            raise page
        if isinstance(page, (dict, list)):
            return json.dumps(page)
        return page


class FakeGeocoder:
    def __init__(self, known: Optional[Dict[str, Coordinates]] = None):
        self.known = dict(known or {})
        self.calls: List[str] = []

    def geocode(self, location):
        self.calls.append(location)
        return self.known.get(location)


def make_hit(
    ext_id,
    title="Software Engineer",
    *,
    description="Build things.",
    company="Acme Corp",
    location="Denver, Colorado",
    lat=None,
    lon=None,
    created="2024-03-10T12:00:00Z",
    category="it-jobs",
    salary_min=90000,
    salary_max=120000,
):
    hit = {
        "id": ext_id,
        "title": title,
        "description": description,
        "company": {"display_name": company} if company else None,
        "location": {"display_name": location} if location else None,
        "category": {"tag": category, "label": None} if category else None,
        "salary_min": salary_min,
        "salary_max": salary_max,
        "redirect_url": f"https://jobs.example.com/{ext_id}",
        "created": created,
    }
    if lat is not None:
        hit["latitude"] = lat
        hit["longitude"] = lon
    return hit


def page(*hits) -> dict:
    return {"count": len(hits), "results": list(hits)}


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in ("SCHEDULER_MODE", "EMAIL_ENABLED", "SEARCH_CACHE_TTL_S", "INGEST_MAX_PAGES", "DEFAULT_USER_EMAIL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("INGEST_PAGE_DELAY_MS", "0")
    get_runtime_config.cache_clear()
    yield
    get_runtime_config.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "jobs.sqlite3")
    init_db(path)
    return path


@pytest.fixture
def con(db_path):
    c = connect(db_path)
    yield c
    c.close()


@pytest.fixture
def seed(con):
    """Store the given hits through the real pipeline (single page)."""

    def _seed(*hits) -> int:
        source = FakeJobSource([page(*hits)])
        pipeline = IngestionPipeline(con, source, max_pages=1, page_delay_s=0)
        return pipeline.ingest("", "", 0)

    return _seed
