import sqlite3
from pathlib import Path

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS companies (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS locations (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  city TEXT,
  state TEXT,
  country TEXT NOT NULL DEFAULT 'US',
  display_name TEXT NOT NULL,
  latitude REAL,
  longitude REAL,
  UNIQUE(city, state, country)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_locations_display_name ON locations(display_name);

CREATE TABLE IF NOT EXISTS categories (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  tag TEXT NOT NULL UNIQUE,
  name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  external_id TEXT NOT NULL UNIQUE,
  title TEXT NOT NULL DEFAULT '',
  company_id INTEGER REFERENCES companies(id),
  location_id INTEGER REFERENCES locations(id),
  category_id INTEGER REFERENCES categories(id),
  salary_min REAL,
  salary_max REAL,
  description TEXT NOT NULL DEFAULT '',
  job_url TEXT NOT NULL DEFAULT '',
  source TEXT NOT NULL DEFAULT '',
  created_date TEXT,
  date_found TEXT NOT NULL,
  apply_by TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_location_id ON jobs(location_id);
CREATE INDEX IF NOT EXISTS idx_jobs_created_date ON jobs(created_date);

CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  username TEXT NOT NULL,
  email TEXT NOT NULL DEFAULT '',
  first_name TEXT
);

CREATE TABLE IF NOT EXISTS saved_queries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  query TEXT NOT NULL,
  location TEXT NOT NULL,
  is_active INTEGER NOT NULL DEFAULT 1,
  distance INTEGER NOT NULL DEFAULT 25,
  excluded_terms TEXT,
  date_from TEXT,
  date_to TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  last_run_at TEXT,
  new_jobs_count INTEGER NOT NULL DEFAULT 0,
  UNIQUE(user_id, query, location)
);
CREATE INDEX IF NOT EXISTS idx_saved_queries_active ON saved_queries(is_active);

CREATE TABLE IF NOT EXISTS runs (
  run_id TEXT PRIMARY KEY,
  trigger TEXT NOT NULL,
  started_at TEXT NOT NULL,
  finished_at TEXT,
  stats_json TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_runs_started_at ON runs(started_at);
"""


def _has_column(con: sqlite3.Connection, table: str, column: str) -> bool:
    rows = con.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r[1] == column for r in rows)  # r[1] = name


def _ensure_schema(con: sqlite3.Connection) -> None:
    """Idempotent upgrades for older DBs."""

    # saved_queries filters were added after the first release
    for column, ddl in (
        ("excluded_terms", "ALTER TABLE saved_queries ADD COLUMN excluded_terms TEXT"),
        ("date_from", "ALTER TABLE saved_queries ADD COLUMN date_from TEXT"),
        ("date_to", "ALTER TABLE saved_queries ADD COLUMN date_to TEXT"),
    ):
        if not _has_column(con, "saved_queries", column):
            con.execute(ddl)

    if not _has_column(con, "jobs", "apply_by"):
        con.execute("ALTER TABLE jobs ADD COLUMN apply_by TEXT")


def init_db(db_path: str) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(db_path)
    try:
        con.executescript(_INIT_SQL)

        _ensure_schema(con)

        con.commit()
    finally:
        con.close()
