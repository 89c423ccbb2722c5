from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests


@dataclass(frozen=True)
class SearchParams:
    query: str
    location: str
    distance: int = 25
    page: int = 1


class JobSourceClient(ABC):
    """One upstream job API: how to address a page and how to fetch it."""

    source_tag: str = "unknown"

    @abstractmethod
    def build_request(self, params: SearchParams) -> requests.PreparedRequest:
        pass

    @abstractmethod
    def execute(self, params: SearchParams) -> Optional[str]:
        """Return the raw response body for one page (may be empty)."""
        pass
