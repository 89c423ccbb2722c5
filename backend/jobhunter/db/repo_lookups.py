"""Find-or-create repositories for companies, locations and categories.

Each helper inserts first-sighting rows and relies on the table's UNIQUE
constraint when another writer got there first: the IntegrityError is
swallowed and the winning row is read back.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger("repo_lookups")


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _norm(s: Optional[str]) -> str:
    return " ".join((s or "").split())


def split_display_name(display_name: str) -> Tuple[Optional[str], Optional[str]]:
    """'Denver, Colorado' -> ('Denver', 'Colorado'); 'Texas' -> ('Texas', None)."""
    parts = [p.strip() for p in (display_name or "").split(",") if p.strip()]
    if not parts:
        return None, None
    city = parts[0]
    state = parts[1] if len(parts) > 1 else None
    return city, state


def category_name_from_tag(tag: str) -> str:
    return tag.replace("-", " ").upper()


# -------------------------
# Companies
# -------------------------


def _company_id_by_name(con, name: str) -> Optional[int]:
    row = con.execute("SELECT id FROM companies WHERE name=?", (name,)).fetchone()
    return int(row["id"]) if row else None


def find_or_create_company(con, name: str) -> Optional[int]:
    name = _norm(name)
    if not name:
        return None

    existing = _company_id_by_name(con, name)
    if existing is not None:
        return existing

    try:
        cur = con.execute(
            "INSERT INTO companies(name, created_at) VALUES(?,?)",
            (name, now_utc_iso()),
        )
        return int(cur.lastrowid)
    except sqlite3.IntegrityError:
        logger.debug("company %r created concurrently; reading back", name)
        return _company_id_by_name(con, name)


def get_company(con, company_id: int) -> Optional[Dict[str, Any]]:
    row = con.execute("SELECT * FROM companies WHERE id=?", (company_id,)).fetchone()
    return dict(row) if row else None


# -------------------------
# Locations
# -------------------------


def _location_id_by_display_name(con, display_name: str) -> Optional[int]:
    row = con.execute(
        "SELECT id FROM locations WHERE display_name=?",
        (display_name,),
    ).fetchone()
    return int(row["id"]) if row else None


def _location_id_by_parts(con, city, state, country) -> Optional[int]:
    row = con.execute(
        "SELECT id FROM locations WHERE city IS ? AND state IS ? AND country=?",
        (city, state, country),
    ).fetchone()
    return int(row["id"]) if row else None


def find_or_create_location(
    con,
    display_name: str,
    *,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    country: str = "US",
) -> Optional[int]:
    display_name = _norm(display_name)
    if not display_name:
        return None

    existing = _location_id_by_display_name(con, display_name)
    if existing is not None:
        if latitude is not None and longitude is not None:
            # backfill coordinates first seen on a later record
            con.execute(
                "UPDATE locations SET latitude=?, longitude=? "
                "WHERE id=? AND (latitude IS NULL OR longitude IS NULL)",
                (latitude, longitude, existing),
            )
        return existing

    city, state = split_display_name(display_name)
    try:
        cur = con.execute(
            """
            INSERT INTO locations(city, state, country, display_name, latitude, longitude)
            VALUES (?,?,?,?,?,?)
            """,
            (city, state, country, display_name, latitude, longitude),
        )
        return int(cur.lastrowid)
    except sqlite3.IntegrityError:
        # Either the display name raced in, or a differently spelled display
        # name already owns (city, state, country).
        found = _location_id_by_display_name(con, display_name)
        if found is None:
            found = _location_id_by_parts(con, city, state, country)
        return found


def get_location(con, location_id: int) -> Optional[Dict[str, Any]]:
    row = con.execute("SELECT * FROM locations WHERE id=?", (location_id,)).fetchone()
    return dict(row) if row else None


# -------------------------
# Categories
# -------------------------


def _category_id_by_tag(con, tag: str) -> Optional[int]:
    row = con.execute("SELECT id FROM categories WHERE tag=?", (tag,)).fetchone()
    return int(row["id"]) if row else None


def find_or_create_category(con, tag: str, label: Optional[str] = None) -> Optional[int]:
    tag = (tag or "").strip()
    if not tag:
        return None

    existing = _category_id_by_tag(con, tag)
    if existing is not None:
        return existing

    name = _norm(label) or category_name_from_tag(tag)
    try:
        cur = con.execute(
            "INSERT INTO categories(tag, name) VALUES(?,?)",
            (tag, name),
        )
        return int(cur.lastrowid)
    except sqlite3.IntegrityError:
        return _category_id_by_tag(con, tag)


def get_category(con, category_id: int) -> Optional[Dict[str, Any]]:
    row = con.execute("SELECT * FROM categories WHERE id=?", (category_id,)).fetchone()
    return dict(row) if row else None
