import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from jobhunter.db.conn import connect
from jobhunter.db.repo_runs import finish_run, start_run
from jobhunter.db.repo_saved_queries import list_active_saved_queries, record_run_result
from jobhunter.db.repo_users import get_user
from jobhunter.services.ingest import IngestionPipeline
from jobhunter.services.notify import NotificationGateway

logger = logging.getLogger("runner")


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunnerService:
    """One pass over every active saved query: ingest, bookkeep, notify.

    Each query is isolated; a failure is logged and the pass moves on.
    """

    def __init__(self, con, pipeline, notifier: NotificationGateway):
        self.con = con
        self.pipeline = pipeline
        self.notifier = notifier

    def run_once(self, trigger: str = "manual") -> dict:
        started = now_utc_iso()
        run_id = str(uuid.uuid4())
        start_run(self.con, run_id, trigger, started)

        stats: Dict[str, Any] = {
            "queries": 0,
            "succeeded": 0,
            "failed": 0,
            "notified": 0,
            "new_jobs": 0,
            "per_query": [],
        }

        queries = list_active_saved_queries(self.con)
        stats["queries"] = len(queries)
        if not queries:
            logger.warning("No active saved queries found. Add queries via the API.")
        else:
            logger.info("Found %s active saved queries to process", len(queries))

        for sq in queries:
            self._run_query(sq, stats)

        finish_run(self.con, run_id, now_utc_iso(), stats)
        logger.info(
            "Run %s complete: queries=%s succeeded=%s failed=%s new_jobs=%s",
            run_id,
            stats["queries"],
            stats["succeeded"],
            stats["failed"],
            stats["new_jobs"],
        )
        return {"run_id": run_id, "started_at": started, "stats": stats}

    def _run_query(self, sq: Dict[str, Any], stats: Dict[str, Any]) -> None:
        entry = {"id": sq["id"], "query": sq["query"], "location": sq["location"]}
        try:
            logger.info("Fetching jobs for query=%r location=%r", sq["query"], sq["location"])
            new_count = int(self.pipeline.ingest(sq["query"], sq["location"], sq["distance"]))
            record_run_result(self.con, sq["id"], new_jobs_count=new_count)
        except Exception as exc:
            self.con.rollback()
            logger.exception("Error fetching jobs for query=%r location=%r", sq["query"], sq["location"])
            stats["failed"] += 1
            entry["error"] = str(exc)[:300]
            stats["per_query"].append(entry)
            return

        stats["succeeded"] += 1
        stats["new_jobs"] += new_count
        entry["new_jobs"] = new_count
        logger.info("Found %s new jobs for query=%r location=%r", new_count, sq["query"], sq["location"])

        if new_count > 0:
            entry["notified"] = self._notify(sq, new_count)
            if entry["notified"]:
                stats["notified"] += 1
        stats["per_query"].append(entry)

    def _notify(self, sq: Dict[str, Any], new_count: int) -> bool:
        try:
            user = get_user(self.con, sq["user_id"])
            if user is None:
                logger.warning("User not found for saved query id %s", sq["id"])
                return False
            self.notifier.notify(user, sq, new_count)
            return True
        except Exception:
            logger.exception("Error sending notification for saved query id %s", sq["id"])
            return False


def run_saved_queries(db_path: str, client, notifier: NotificationGateway, cfg, trigger: str = "manual") -> dict:
    """Open a dedicated connection, run one pass, close it."""
    con = connect(db_path)
    try:
        pipeline = IngestionPipeline.from_config(con, client, cfg)
        return RunnerService(con, pipeline, notifier).run_once(trigger=trigger)
    finally:
        con.close()
