"""Command-line entry point.

    jobhunter init-db
    jobhunter run
    jobhunter search "engineer" "Denver" --distance 25 --exclude "senior,lead"
    jobhunter serve --port 8000
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date

import uvicorn

from jobhunter.core.config import get_db_path, get_runtime_config
from jobhunter.core.log import configure_logging
from jobhunter.db.conn import connect
from jobhunter.db.schema import init_db
from jobhunter.services.cache import TTLCache
from jobhunter.services.fetchers.adzuna import AdzunaClient
from jobhunter.services.geocoder import Geocoder
from jobhunter.services.ingest import IngestionPipeline
from jobhunter.services.notify import build_notifier
from jobhunter.services.runner import run_saved_queries
from jobhunter.services.search import SearchEngine

logger = logging.getLogger("cli")


def _cmd_init_db(args) -> int:
    init_db(args.db)
    logger.info("Schema ready at %s", args.db)
    return 0


def _cmd_run(args) -> int:
    cfg = get_runtime_config()
    init_db(args.db)
    result = run_saved_queries(
        args.db,
        AdzunaClient.from_config(cfg),
        build_notifier(cfg),
        cfg,
        trigger="cli",
    )
    print(json.dumps(result, indent=2))
    return 0 if result["stats"]["failed"] == 0 else 1


def _cmd_search(args) -> int:
    cfg = get_runtime_config()
    init_db(args.db)
    con = connect(args.db)
    try:
        pipeline = IngestionPipeline.from_config(con, AdzunaClient.from_config(cfg), cfg)
        new_jobs = pipeline.ingest(args.query, args.location, args.distance)
        engine = SearchEngine(con, Geocoder.from_config(cfg), TTLCache(cfg.search_cache_ttl_s))
        result = engine.search(
            args.query,
            args.location,
            args.distance,
            args.exclude,
            args.date_from,
            args.date_to,
        )
    finally:
        con.close()
    print(json.dumps({**result.to_dict(), "new_jobs": new_jobs}, indent=2))
    return 0


def _cmd_serve(args) -> int:
    os.environ["DB_PATH"] = args.db
    uvicorn.run("jobhunter.main:create_app", factory=True, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="jobhunter", description="Job ingestion and saved-search runner")
    p.add_argument("--db", default=get_db_path(), help="SQLite path (default: $DB_PATH)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create or upgrade the schema").set_defaults(func=_cmd_init_db)
    sub.add_parser("run", help="run every active saved query once").set_defaults(func=_cmd_run)

    s = sub.add_parser("search", help="ingest then search")
    s.add_argument("query")
    s.add_argument("location")
    s.add_argument("--distance", type=int, default=25)
    s.add_argument("--exclude", default=None, help="comma separated excluded terms")
    s.add_argument("--date-from", type=date.fromisoformat, default=None)
    s.add_argument("--date-to", type=date.fromisoformat, default=None)
    s.set_defaults(func=_cmd_search)

    srv = sub.add_parser("serve", help="run the HTTP API")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.set_defaults(func=_cmd_serve)
    return p


def main(argv=None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
