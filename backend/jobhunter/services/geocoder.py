"""Location text -> coordinates via Nominatim (OpenStreetMap).

Results are cached for the life of the process, keyed by the exact input
string (so "Austin, TX" and "austin, tx" are separate entries). Misses are
never cached.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from jobhunter.core.config import RuntimeConfig

logger = logging.getLogger("geocoder")


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    display_name: str


class Geocoder:
    def __init__(
        self,
        *,
        url: str,
        user_agent: str,
        timeout_s: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self._cache: Dict[str, Coordinates] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: RuntimeConfig) -> "Geocoder":
        return cls(
            url=cfg.geocoder_url,
            user_agent=cfg.geocoder_user_agent,
            timeout_s=float(cfg.http_timeout_s),
        )

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def geocode(self, location: Optional[str]) -> Optional[Coordinates]:
        if location is None or not location.strip():
            return None

        with self._lock:
            hit = self._cache.get(location)
        if hit is not None:
            return hit

        coords = self._lookup(location)
        if coords is not None:
            with self._lock:
                self._cache[location] = coords
        return coords

    def _lookup(self, location: str) -> Optional[Coordinates]:
        try:
            r = self.session.get(
                self.url,
                params={"q": location, "format": "json", "limit": 1},
                # Nominatim usage policy requires an identifying User-Agent
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_s,
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Error geocoding location %r: %s", location, exc)
            return None

        if not isinstance(data, list) or not data:
            logger.warning("No geocoding results found for location: %r", location)
            return None

        first = data[0]
        try:
            lat = float(first["lat"])
            lon = float(first["lon"])
            display_name = str(first.get("display_name") or location)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Incomplete geocoding result for location %r: %r", location, first)
            return None

        logger.info("Geocoded %r to: %s (lat: %s, lon: %s)", location, display_name, lat, lon)
        return Coordinates(latitude=lat, longitude=lon, display_name=display_name)
