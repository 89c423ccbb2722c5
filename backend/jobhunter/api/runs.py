import json

from fastapi import APIRouter, Depends, HTTPException

from jobhunter.api.deps import get_db
from jobhunter.db.repo_runs import get_run, list_runs

router = APIRouter()


def _with_stats(row: dict) -> dict:
    try:
        row["stats"] = json.loads(row.pop("stats_json") or "{}")
    except ValueError:
        row["stats"] = {}
    return row


@router.get("/runs")
def runs(con=Depends(get_db)):
    return [_with_stats(r) for r in list_runs(con, limit=50)]


@router.get("/runs/{run_id}")
def run_detail(run_id: str, con=Depends(get_db)):
    row = get_run(con, run_id)
    if not row:
        raise HTTPException(status_code=404, detail="run not found")
    return _with_stats(row)
