import json
from typing import Any, Dict, List, Optional


def start_run(con, run_id: str, trigger: str, started_at: str) -> None:
    con.execute(
        "INSERT INTO runs(run_id, trigger, started_at, stats_json) VALUES(?,?,?,?)",
        (run_id, trigger, started_at, "{}"),
    )
    con.commit()


def finish_run(con, run_id: str, finished_at: str, stats: Dict[str, Any]) -> None:
    con.execute(
        "UPDATE runs SET finished_at=?, stats_json=? WHERE run_id=?",
        (finished_at, json.dumps(stats), run_id),
    )
    con.commit()


def list_runs(con, limit: int = 50) -> List[Dict[str, Any]]:
    rows = con.execute(
        """
        SELECT run_id, trigger, started_at, finished_at, stats_json
        FROM runs
        ORDER BY started_at DESC
        LIMIT ?
        """,
        (int(limit),),
    ).fetchall()
    return [dict(r) for r in rows]


def get_run(con, run_id: str) -> Optional[Dict[str, Any]]:
    row = con.execute(
        "SELECT run_id, trigger, started_at, finished_at, stats_json FROM runs WHERE run_id=?",
        (run_id,),
    ).fetchone()
    return dict(row) if row else None
