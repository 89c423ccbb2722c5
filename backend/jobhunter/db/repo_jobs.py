from typing import Any, Dict, Iterable, List, Optional, Set

JOB_COLUMNS = [
    "external_id",
    "title",
    "company_id",
    "location_id",
    "category_id",
    "salary_min",
    "salary_max",
    "description",
    "job_url",
    "source",
    "created_date",
    "date_found",
    "apply_by",
]

_TEXT_MATCH = (
    "(instr(LOWER(COALESCE(j.title, '')), LOWER(:query)) > 0"
    " OR instr(LOWER(COALESCE(j.description, '')), LOWER(:query)) > 0)"
)

_SELECT_JOBS = """
    SELECT j.*, l.latitude AS latitude, l.longitude AS longitude
    FROM jobs j
    LEFT JOIN locations l ON l.id = j.location_id
"""

_ORDER = " ORDER BY COALESCE(j.created_date, '') DESC, j.id DESC"


def count_jobs(con) -> int:
    row = con.execute("SELECT COUNT(*) AS c FROM jobs").fetchone()
    return int(row["c"]) if row else 0


def existing_external_ids(con, external_ids: Iterable[str]) -> Set[str]:
    ids = [i for i in external_ids if i]
    found: Set[str] = set()
    # chunk to stay under SQLite variable limits
    chunk_size = 500
    for i in range(0, len(ids), chunk_size):
        chunk = ids[i : i + chunk_size]
        qmarks = ",".join(["?"] * len(chunk))
        rows = con.execute(
            f"SELECT external_id FROM jobs WHERE external_id IN ({qmarks})",
            chunk,
        ).fetchall()
        found.update(r["external_id"] for r in rows)
    return found


def insert_jobs(con, jobs: List[Dict[str, Any]]) -> int:
    """Bulk insert; rows whose external_id already exists are dropped by the store.

    Returns the number of rows actually written. Does not commit.
    """
    if not jobs:
        return 0
    cols = ",".join(JOB_COLUMNS)
    qmarks = ",".join(["?"] * len(JOB_COLUMNS))
    before = con.total_changes
    con.executemany(
        f"INSERT INTO jobs({cols}) VALUES ({qmarks}) ON CONFLICT(external_id) DO NOTHING",
        [tuple(job.get(c) for c in JOB_COLUMNS) for job in jobs],
    )
    return con.total_changes - before


def get_job_by_external_id(con, external_id: str) -> Optional[Dict[str, Any]]:
    row = con.execute("SELECT * FROM jobs WHERE external_id=?", (external_id,)).fetchone()
    return dict(row) if row else None


def find_by_query_and_location(con, query: str, location: str) -> List[Dict[str, Any]]:
    """Substring match on title/description and on the location display name.

    Jobs without a location row are kept.
    """
    rows = con.execute(
        _SELECT_JOBS
        + " WHERE "
        + _TEXT_MATCH
        + " AND (l.display_name IS NULL"
        " OR instr(LOWER(l.display_name), LOWER(:location)) > 0)"
        + _ORDER,
        {"query": query or "", "location": location or ""},
    ).fetchall()
    return [dict(r) for r in rows]


def find_by_query_and_distance(
    con,
    query: str,
    center_lat: float,
    center_lon: float,
    distance_miles: float,
) -> List[Dict[str, Any]]:
    """Substring match on title/description within a radius of the centre.

    Jobs whose location has no coordinates (or no location at all) are kept.
    Requires the haversine_miles SQL function registered by db.conn.connect.
    """
    rows = con.execute(
        _SELECT_JOBS
        + " WHERE "
        + _TEXT_MATCH
        + " AND (l.latitude IS NULL OR l.longitude IS NULL"
        " OR haversine_miles(:lat, :lon, l.latitude, l.longitude) <= :miles)"
        + _ORDER,
        {
            "query": query or "",
            "lat": float(center_lat),
            "lon": float(center_lon),
            "miles": float(distance_miles),
        },
    ).fetchall()
    return [dict(r) for r in rows]
