import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field, model_validator

from jobhunter.api.deps import Caller, current_caller, current_user_id, get_db
from jobhunter.db.repo_saved_queries import (
    DuplicateSavedQuery,
    create_saved_query,
    delete_saved_query,
    find_saved_query,
    get_saved_query,
    list_active_saved_queries,
    list_saved_queries,
    toggle_saved_query,
    update_saved_query,
)
from jobhunter.db.repo_users import ensure_user

logger = logging.getLogger("api.saved_queries")

router = APIRouter()

QUERY_PATTERN = r"^[a-zA-Z0-9\s\-\.]+$"
LOCATION_PATTERN = r"^[a-zA-Z0-9\s,\-\.]+$"


class _DateRangeMixin(BaseModel):
    @model_validator(mode="after")
    def _check_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class SavedQueryModel(_DateRangeMixin):
    query: str = Field(min_length=1, max_length=255, pattern=QUERY_PATTERN)
    location: str = Field(min_length=1, max_length=255, pattern=LOCATION_PATTERN)
    is_active: bool = True
    distance: int = Field(default=25, ge=0, le=500)
    excluded_terms: Optional[str] = Field(default=None, max_length=500)
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class SavedQueryUpdateModel(_DateRangeMixin):
    query: Optional[str] = Field(default=None, min_length=1, max_length=255, pattern=QUERY_PATTERN)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255, pattern=LOCATION_PATTERN)
    is_active: Optional[bool] = None
    distance: Optional[int] = Field(default=None, ge=0, le=500)
    excluded_terms: Optional[str] = Field(default=None, max_length=500)
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@router.get("/jobs/saved-queries")
def api_list_saved_queries(con=Depends(get_db), user_id: str = Depends(current_user_id)):
    return list_saved_queries(con, user_id)


@router.get("/jobs/saved-queries/active")
def api_list_active_saved_queries(con=Depends(get_db), user_id: str = Depends(current_user_id)):
    return list_active_saved_queries(con, user_id)


@router.get("/jobs/saved-queries/{query_id}")
def api_get_saved_query(query_id: int, con=Depends(get_db), user_id: str = Depends(current_user_id)):
    sq = get_saved_query(con, query_id, user_id)
    if not sq:
        raise HTTPException(status_code=404, detail="Saved query not found")
    return sq


@router.post("/jobs/saved-queries", status_code=201)
def api_create_saved_query(
    payload: SavedQueryModel,
    con=Depends(get_db),
    caller: Caller = Depends(current_caller),
):
    user_id = caller.id
    query = payload.query.strip()
    location = payload.location.strip()
    if find_saved_query(con, user_id, query, location):
        logger.warning("Saved query already exists: %r - location %r", query, location)
        raise HTTPException(status_code=409, detail="Query already exists")

    data = payload.model_dump()
    data["query"] = query
    data["location"] = location
    try:
        created = create_saved_query(con, user_id, data)
    except DuplicateSavedQuery:
        raise HTTPException(status_code=409, detail="Query already exists")
    # the scheduler addresses notifications through this row
    ensure_user(con, user_id, email=caller.email, first_name=caller.first_name)
    logger.info("Created saved query %s: %r - location %r", created["id"], query, location)
    return created


@router.put("/jobs/saved-queries/{query_id}")
def api_update_saved_query(
    query_id: int,
    payload: SavedQueryUpdateModel,
    con=Depends(get_db),
    caller: Caller = Depends(current_caller),
):
    try:
        updated = update_saved_query(con, query_id, caller.id, payload.model_dump(exclude_none=True))
    except KeyError:
        raise HTTPException(status_code=404, detail="Saved query not found")
    except DuplicateSavedQuery:
        raise HTTPException(status_code=409, detail="Query already exists")
    ensure_user(con, caller.id, email=caller.email, first_name=caller.first_name)
    logger.info("Updated saved query %s: %r - location %r", query_id, updated["query"], updated["location"])
    return updated


@router.patch("/jobs/saved-queries/{query_id}/toggle")
def api_toggle_saved_query(query_id: int, con=Depends(get_db), user_id: str = Depends(current_user_id)):
    try:
        toggled = toggle_saved_query(con, query_id, user_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Saved query not found")
    logger.info("Toggled saved query %s to active=%s", query_id, toggled["is_active"])
    return toggled


@router.delete("/jobs/saved-queries/{query_id}", status_code=204)
def api_delete_saved_query(query_id: int, con=Depends(get_db), user_id: str = Depends(current_user_id)):
    if not delete_saved_query(con, query_id, user_id):
        raise HTTPException(status_code=404, detail="Saved query not found")
    logger.info("Deleted saved query %s", query_id)
    return Response(status_code=204)
