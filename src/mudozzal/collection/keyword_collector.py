"""
Keyword search collector.
Queries an ImageSearch provider per keyword and downloads the hits.
"""

import logging
from typing import List

from tqdm import tqdm

from mudozzal.collection.base_collector import BaseCollector, CollectionStats
from mudozzal.collection.image_search import ImageSearch
from mudozzal.errors import DownloadError

logger = logging.getLogger(__name__)


class KeywordCollector(BaseCollector):
    """
    Collects images found by keyword search.

    Downloads smaller than min_bytes (icons, tracking pixels) or larger than
    max_bytes are dropped. The manifest is saved after every keyword so an
    interrupted run keeps what it already fetched. min_interval spaces out
    the search queries.
    """

    def __init__(self, store, search: ImageSearch, min_bytes: int = 5000,
                 max_bytes: int = 10 * 1024 * 1024, **kwargs):
        super().__init__(store, **kwargs)
        self.source_name = "keyword"
        self.search = search
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes

    def collect(self, keywords: List[str]) -> CollectionStats:
        """
        Search and download images for each keyword.

        Args:
            keywords: Search terms, queried in order.

        Returns:
            Counters for the run.
        """
        stats = CollectionStats()
        manifest = self.store.load_manifest()

        logger.info(f"Keyword search: {len(keywords)} keywords")

        for i, keyword in enumerate(keywords):
            logger.info(f"[{i + 1}/{len(keywords)}] Searching '{keyword}'")

            try:
                results = self._retry_with_backoff(self.search.search, keyword)
            except Exception as e:
                logger.error(f"Search failed for '{keyword}': {e}")
                continue

            logger.info(f"  -> {len(results)} results")

            for result in tqdm(results, desc=keyword, unit="img", leave=False):
                if not result.url:
                    continue

                try:
                    data = self._download_image(result.url)
                except DownloadError as e:
                    logger.debug(f"Download skipped: {e}")
                    stats.failed += 1
                    continue

                if len(data) < self.min_bytes or len(data) > self.max_bytes:
                    stats.filtered += 1
                    continue

                try:
                    entry = self._accept(
                        manifest, data, result.url, keyword,
                        title=result.title, site=result.source,
                        width=result.width, height=result.height,
                    )
                except OSError as e:
                    logger.warning(f"Could not store {result.url}: {e}")
                    stats.failed += 1
                    continue

                if entry is None:
                    stats.duplicates += 1
                    continue

                stats.collected += 1
                logger.info(f"  + {entry.filename} ({len(data) / 1024:.0f}KB)")

            self.store.save_manifest(manifest)

        return stats
