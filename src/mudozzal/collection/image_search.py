"""
Keyword image search.

ImageSearch is the narrow interface the keyword collector depends on;
SerpApiImageSearch implements it with SerpAPI's Google Images engine.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from mudozzal.errors import SearchError

logger = logging.getLogger(__name__)

API_URL = "https://serpapi.com/search.json"


@dataclass
class SearchResult:
    """A single image hit returned by a search provider."""
    url: str
    thumbnail: str = ""
    title: str = ""
    source: str = ""
    width: Optional[int] = None
    height: Optional[int] = None


class ImageSearch(ABC):
    """Search provider interface."""

    @abstractmethod
    def search(self, keyword: str) -> List[SearchResult]:
        """
        Return candidate images for a keyword.

        Raises:
            SearchError: if the provider request fails.
        """
        pass


class SerpApiImageSearch(ImageSearch):
    """Google Images results through SerpAPI (requires SERPAPI_KEY)."""

    def __init__(self, api_key: str, num_results: int = 20, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.num_results = num_results
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(self, keyword: str) -> List[SearchResult]:
        params = {
            "engine": "google_images",
            "q": keyword,
            "api_key": self.api_key,
            "ijn": "0",
            "num": str(self.num_results),
        }

        try:
            response = self.session.get(API_URL, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SearchError(f"SerpAPI request failed: {e}") from e

        if response.status_code != 200:
            raise SearchError(f"SerpAPI error: {response.status_code} {response.reason}")

        try:
            data = response.json()
        except ValueError as e:
            raise SearchError(f"SerpAPI returned invalid JSON: {e}") from e

        results = []
        for item in data.get("images_results", []):
            if not item.get("original"):
                continue
            results.append(SearchResult(
                url=item["original"],
                thumbnail=item.get("thumbnail", ""),
                title=item.get("title") or "",
                source=item.get("source") or "",
                width=item.get("original_width"),
                height=item.get("original_height"),
            ))

        logger.debug(f"SerpAPI '{keyword}': {len(results)} results")
        return results
