"""Adzuna job search API client.

Free tier is rate limited; callers pace page requests themselves.
Sign up at https://developer.adzuna.com/
"""
from __future__ import annotations

import logging
from typing import Optional

import requests

from jobhunter.core.config import RuntimeConfig
from jobhunter.services.fetchers.base import JobSourceClient, SearchParams

logger = logging.getLogger("adzuna")

KM_PER_MILE = 1.609344


class AdzunaClient(JobSourceClient):
    source_tag = "Adzuna"

    def __init__(
        self,
        *,
        app_id: str,
        app_key: str,
        base_url: str,
        country: str = "us",
        results_per_page: int = 100,
        timeout_s: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.app_id = app_id
        self.app_key = app_key
        self.base_url = base_url.rstrip("/")
        self.country = country
        self.results_per_page = results_per_page
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: RuntimeConfig) -> "AdzunaClient":
        return cls(
            app_id=cfg.adzuna_app_id,
            app_key=cfg.adzuna_app_key,
            base_url=cfg.adzuna_base_url,
            country=cfg.adzuna_country,
            results_per_page=cfg.results_per_page,
            timeout_s=float(cfg.http_timeout_s),
        )

    def build_request(self, params: SearchParams) -> requests.PreparedRequest:
        query_params: dict = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "results_per_page": self.results_per_page,
            "what": params.query,
            "content-type": "application/json",
        }
        if params.location:
            query_params["where"] = params.location
        if params.distance and params.distance > 0:
            query_params["distance"] = int(round(params.distance * KM_PER_MILE))

        url = f"{self.base_url}/{self.country}/search/{int(params.page)}"
        return requests.Request("GET", url, params=query_params).prepare()

    def execute(self, params: SearchParams) -> Optional[str]:
        prepared = self.build_request(params)
        logger.info(
            "Calling Adzuna API - query=%r location=%r page=%s",
            params.query,
            params.location,
            params.page,
        )
        try:
            r = self.session.send(prepared, timeout=self.timeout_s)
            r.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Error while calling Adzuna API: %s", exc)
            raise
        return r.text
