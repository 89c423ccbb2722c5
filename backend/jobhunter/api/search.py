import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from jobhunter.api.deps import get_db
from jobhunter.core.config import get_runtime_config
from jobhunter.services.ingest import IngestionPipeline
from jobhunter.services.search import SearchEngine

logger = logging.getLogger("api.search")

router = APIRouter()


@router.get("/jobs/search")
def search_jobs(
    request: Request,
    query: str = Query(..., min_length=1, max_length=255),
    location: str = Query(..., min_length=1, max_length=255),
    distance: int = Query(25, ge=0, le=500),
    excluded_terms: Optional[str] = Query(None, alias="excludedTerms", max_length=500),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    con=Depends(get_db),
):
    """Fetch fresh postings upstream, then search the store (cached for the TTL)."""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=400, detail="dateFrom must not be after dateTo")

    logger.info(
        "Search request: query=%r location=%r distance=%s excludedTerms=%r dateFrom=%s dateTo=%s",
        query,
        location,
        distance,
        excluded_terms,
        date_from,
        date_to,
    )

    state = request.app.state
    new_jobs = 0
    try:
        pipeline = IngestionPipeline.from_config(con, state.job_source, get_runtime_config())
        new_jobs = pipeline.ingest(query, location, distance)
    except Exception:
        # a search always answers from whatever the store already holds
        con.rollback()
        logger.exception("Ingestion failed for query=%r location=%r", query, location)

    engine = SearchEngine(con, state.geocoder, state.search_cache)
    result = engine.search(query, location, distance, excluded_terms, date_from, date_to)
    logger.info("Returning %s jobs (cached=%s, new_jobs=%s)", result.count, result.cached, new_jobs)

    return {**result.to_dict(), "new_jobs": new_jobs}
