import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_DISTANCE = 25

_EDITABLE = ("query", "location", "is_active", "distance", "excluded_terms", "date_from", "date_to")


class DuplicateSavedQuery(Exception):
    pass


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso_or_none(v) -> Optional[str]:
    if v is None or v == "":
        return None
    if hasattr(v, "isoformat"):
        return v.isoformat()
    return str(v)


def _row_to_saved_query_dict(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "query": row["query"],
        "location": row["location"],
        "is_active": bool(row["is_active"]),
        "distance": int(row["distance"]),
        "excluded_terms": row["excluded_terms"],
        "date_from": row["date_from"],
        "date_to": row["date_to"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "last_run_at": row["last_run_at"],
        "new_jobs_count": int(row["new_jobs_count"] or 0),
    }


def list_saved_queries(con, user_id: str) -> List[Dict[str, Any]]:
    rows = con.execute(
        """
        SELECT * FROM saved_queries
        WHERE user_id=?
        ORDER BY last_run_at IS NULL, last_run_at DESC, id ASC
        """,
        (user_id,),
    ).fetchall()
    return [_row_to_saved_query_dict(r) for r in rows]


def list_active_saved_queries(con, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Active queries for one user, or for everyone when user_id is None."""
    if user_id is None:
        rows = con.execute(
            "SELECT * FROM saved_queries WHERE is_active=1 ORDER BY id ASC"
        ).fetchall()
    else:
        rows = con.execute(
            "SELECT * FROM saved_queries WHERE is_active=1 AND user_id=? ORDER BY id ASC",
            (user_id,),
        ).fetchall()
    return [_row_to_saved_query_dict(r) for r in rows]


def get_saved_query(con, query_id: int, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if user_id is None:
        row = con.execute("SELECT * FROM saved_queries WHERE id=?", (query_id,)).fetchone()
    else:
        row = con.execute(
            "SELECT * FROM saved_queries WHERE id=? AND user_id=?",
            (query_id, user_id),
        ).fetchone()
    return _row_to_saved_query_dict(row) if row else None


def find_saved_query(con, user_id: str, query: str, location: str) -> Optional[Dict[str, Any]]:
    row = con.execute(
        "SELECT * FROM saved_queries WHERE user_id=? AND query=? AND location=?",
        (user_id, query, location),
    ).fetchone()
    return _row_to_saved_query_dict(row) if row else None


def create_saved_query(con, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = now_utc_iso()
    is_active = data.get("is_active")
    distance = data.get("distance")
    try:
        cur = con.execute(
            """
            INSERT INTO saved_queries (
              user_id, query, location, is_active, distance,
              excluded_terms, date_from, date_to, created_at, updated_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            (
                user_id,
                data["query"],
                data["location"],
                1 if is_active is None or is_active else 0,
                DEFAULT_DISTANCE if distance is None else int(distance),
                data.get("excluded_terms") or None,
                _iso_or_none(data.get("date_from")),
                _iso_or_none(data.get("date_to")),
                now,
                now,
            ),
        )
    except sqlite3.IntegrityError as e:
        con.rollback()
        raise DuplicateSavedQuery(f"{data['query']!r} / {data['location']!r}") from e
    con.commit()
    return get_saved_query(con, int(cur.lastrowid))


def update_saved_query(con, query_id: int, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Update the user-editable fields; bookkeeping fields are left alone."""
    current = get_saved_query(con, query_id, user_id)
    if not current:
        raise KeyError("Saved query not found")

    merged = dict(current)
    for k in _EDITABLE:
        if k in data and data[k] is not None:
            merged[k] = data[k]

    try:
        con.execute(
            """
            UPDATE saved_queries
            SET query=?, location=?, is_active=?, distance=?,
                excluded_terms=?, date_from=?, date_to=?, updated_at=?
            WHERE id=? AND user_id=?
            """,
            (
                merged["query"],
                merged["location"],
                1 if merged["is_active"] else 0,
                int(merged["distance"]),
                merged.get("excluded_terms") or None,
                _iso_or_none(merged.get("date_from")),
                _iso_or_none(merged.get("date_to")),
                now_utc_iso(),
                query_id,
                user_id,
            ),
        )
    except sqlite3.IntegrityError as e:
        con.rollback()
        raise DuplicateSavedQuery(f"{merged['query']!r} / {merged['location']!r}") from e
    con.commit()
    return get_saved_query(con, query_id, user_id)


def toggle_saved_query(con, query_id: int, user_id: str) -> Dict[str, Any]:
    current = get_saved_query(con, query_id, user_id)
    if not current:
        raise KeyError("Saved query not found")
    con.execute(
        "UPDATE saved_queries SET is_active=?, updated_at=? WHERE id=? AND user_id=?",
        (0 if current["is_active"] else 1, now_utc_iso(), query_id, user_id),
    )
    con.commit()
    return get_saved_query(con, query_id, user_id)


def delete_saved_query(con, query_id: int, user_id: str) -> bool:
    cur = con.execute(
        "DELETE FROM saved_queries WHERE id=? AND user_id=?",
        (query_id, user_id),
    )
    con.commit()
    return bool(cur.rowcount)


def record_run_result(con, query_id: int, *, new_jobs_count: int, last_run_at: Optional[str] = None) -> None:
    """Scheduler bookkeeping; never touches identity fields."""
    con.execute(
        "UPDATE saved_queries SET last_run_at=?, new_jobs_count=? WHERE id=?",
        (last_run_at or now_utc_iso(), int(new_jobs_count), query_id),
    )
    con.commit()
