import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from jobhunter.api.deps import DEFAULT_USER_ID
from jobhunter.core.config import RuntimeConfig, get_db_path, get_runtime_config
from jobhunter.core.log import configure_logging
from jobhunter.core.scheduler import SchedulerService
from jobhunter.db.conn import connect
from jobhunter.db.repo_users import ensure_user
from jobhunter.db.schema import init_db
from jobhunter.services.cache import TTLCache
from jobhunter.services.fetchers.adzuna import AdzunaClient
from jobhunter.services.fetchers.base import JobSourceClient
from jobhunter.services.geocoder import Geocoder
from jobhunter.services.notify import NotificationGateway, build_notifier

from jobhunter.api.run import router as run_router
from jobhunter.api.runs import router as runs_router
from jobhunter.api.saved_queries import router as saved_queries_router
from jobhunter.api.search import router as search_router
from jobhunter.api.status import router as status_router

logger = logging.getLogger("main")


def _seed_default_user(db_path: str, cfg: RuntimeConfig) -> None:
    if not cfg.default_user_email:
        return
    con = connect(db_path)
    try:
        ensure_user(con, DEFAULT_USER_ID, email=cfg.default_user_email)
    finally:
        con.close()
    logger.info("Default user notifications go to %s", cfg.default_user_email)


def create_app(
    *,
    db_path: Optional[str] = None,
    job_source: Optional[JobSourceClient] = None,
    geocoder: Optional[Geocoder] = None,
    notifier: Optional[NotificationGateway] = None,
) -> FastAPI:
    configure_logging()
    cfg = get_runtime_config()

    db_path = db_path or get_db_path()
    init_db(db_path)
    _seed_default_user(db_path, cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.scheduler.start()
        try:
            yield
        finally:
            await app.state.scheduler.stop()
            # let queued emails finish before the process goes away
            await asyncio.to_thread(app.state.notifier.shutdown)

    app = FastAPI(title="Job Hunter", version="0.1.0", lifespan=lifespan)

    app.state.db_path = db_path
    app.state.job_source = job_source or AdzunaClient.from_config(cfg)
    app.state.geocoder = geocoder or Geocoder.from_config(cfg)
    app.state.notifier = notifier or build_notifier(cfg)
    app.state.search_cache = TTLCache(cfg.search_cache_ttl_s)

    # Scheduler attach
    app.state.scheduler = SchedulerService(app)

    # API routes
    app.include_router(status_router, prefix="/api")
    app.include_router(search_router, prefix="/api")
    app.include_router(saved_queries_router, prefix="/api")
    app.include_router(run_router, prefix="/api")
    app.include_router(runs_router, prefix="/api")

    return app
