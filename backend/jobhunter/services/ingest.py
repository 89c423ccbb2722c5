import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List

from jobhunter.core.config import RuntimeConfig
from jobhunter.db.repo_jobs import existing_external_ids, insert_jobs
from jobhunter.services.fetchers.base import JobSourceClient, SearchParams
from jobhunter.services.mapper import attach_lookups, external_id_of, normalized_job_to_dict

logger = logging.getLogger("ingest")

DEFAULT_MAX_PAGES = 5
DEFAULT_PAGE_DELAY_S = 0.5


@dataclass
class IngestResult:
    new: int = 0
    pages_fetched: int = 0
    skipped_no_id: int = 0
    skipped_duplicate: int = 0
    page_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def parse_results(body: str) -> List[Any]:
    """Return the page's `results` array; a missing or non-array value is empty.

    Raises ValueError for unparseable JSON.
    """
    payload = json.loads(body)
    if not isinstance(payload, dict):
        return []
    results = payload.get("results")
    return results if isinstance(results, list) else []


class IngestionPipeline:
    """Paginated fetch -> dedupe against the store -> bulk insert.

    Blocking: the inter-page delay is a plain sleep, so one call occupies its
    worker for roughly max_pages * page_delay_s plus network time.
    """

    def __init__(
        self,
        con,
        client: JobSourceClient,
        *,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_delay_s: float = DEFAULT_PAGE_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.con = con
        self.client = client
        self.max_pages = max(1, int(max_pages))
        self.page_delay_s = max(0.0, float(page_delay_s))
        self._sleep = sleep

    @classmethod
    def from_config(cls, con, client: JobSourceClient, cfg: RuntimeConfig) -> "IngestionPipeline":
        return cls(
            con,
            client,
            max_pages=cfg.ingest_max_pages,
            page_delay_s=cfg.ingest_page_delay_ms / 1000.0,
        )

    def ingest(self, query: str, location: str, distance: int) -> int:
        return self.ingest_detailed(query, location, distance).new

    def ingest_detailed(self, query: str, location: str, distance: int) -> IngestResult:
        result = IngestResult()

        for page in range(1, self.max_pages + 1):
            if page > 1 and self.page_delay_s:
                # pace upstream calls to respect the API rate limit
                self._sleep(self.page_delay_s)

            params = SearchParams(query=query, location=location, distance=int(distance or 0), page=page)
            logger.info("Fetching page %s of %s for query=%r location=%r", page, self.max_pages, query, location)

            try:
                body = self.client.execute(params)
            except Exception as exc:
                logger.warning("Fetch failed on page %s: %s", page, exc)
                result.page_errors += 1
                continue
            result.pages_fetched += 1

            if not body or not body.strip():
                logger.warning("Empty response from job source on page %s", page)
                continue

            try:
                results = parse_results(body)
            except ValueError as exc:
                logger.warning("Unparseable response on page %s: %s", page, exc)
                result.page_errors += 1
                continue

            if not results:
                logger.info("No more results found on page %s. Stopping pagination.", page)
                break

            try:
                saved = self._process_page(results, result)
            except Exception:
                self.con.rollback()
                logger.exception("Error processing page %s", page)
                result.page_errors += 1
                continue

            if saved:
                logger.info("Saved %s new jobs from page %s", saved, page)

        logger.info(
            "Ingestion done for query=%r location=%r: %s",
            query,
            location,
            result.to_dict(),
        )
        return result

    def _process_page(self, results: List[Any], result: IngestResult) -> int:
        candidate_ids = [external_id_of(h) for h in results if isinstance(h, dict)]
        existing = existing_external_ids(self.con, [i for i in candidate_ids if i])

        staged: List[Dict[str, Any]] = []
        staged_ids = set()
        for hit in results:
            ext_id = external_id_of(hit) if isinstance(hit, dict) else None
            if not ext_id:
                result.skipped_no_id += 1
                continue
            if ext_id in existing or ext_id in staged_ids:
                result.skipped_duplicate += 1
                continue

            job = normalized_job_to_dict(hit, source=self.client.source_tag)
            attach_lookups(self.con, job)
            staged.append(job)
            staged_ids.add(ext_id)

        inserted = insert_jobs(self.con, staged)
        self.con.commit()

        # a concurrent writer may have inserted some of these ids first
        lost = len(staged) - inserted
        if lost > 0:
            result.skipped_duplicate += lost
        result.new += inserted
        return inserted
