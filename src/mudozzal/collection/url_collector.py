"""
URL list collector.
Downloads an explicit list of image URLs (one per line, # for comments).
"""

import logging
from typing import List

from tqdm import tqdm

from mudozzal.collection.base_collector import BaseCollector, CollectionStats

logger = logging.getLogger(__name__)

MANUAL_KEYWORD = "manual"


def read_url_file(path: str) -> List[str]:
    """Read URLs from a text file, skipping blank lines and # comments."""
    with open(path, encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    return [line for line in lines if line and not line.startswith("#")]


class UrlListCollector(BaseCollector):
    """
    Collects images from hand-picked URLs.

    No size filter is applied. Duplicates are reported rather than skipped
    silently, and min_interval spaces out the downloads.
    """

    def __init__(self, store, **kwargs):
        super().__init__(store, **kwargs)
        self.source_name = "url"

    def collect(self, urls: List[str]) -> CollectionStats:
        stats = CollectionStats()
        manifest = self.store.load_manifest()

        logger.info(f"URL list: {len(urls)} URLs")

        for i, url in enumerate(tqdm(urls, desc="Downloading", unit="url")):
            self._rate_limit()
            try:
                data = self._download_image(url)
                entry = self._accept(manifest, data, url, MANUAL_KEYWORD)
            except Exception as e:
                logger.error(f"[{i + 1}/{len(urls)}] Failed: {e}")
                stats.failed += 1
                continue

            if entry is None:
                logger.info(f"[{i + 1}/{len(urls)}] Duplicate skipped: {url}")
                stats.duplicates += 1
                continue

            stats.collected += 1
            logger.info(f"[{i + 1}/{len(urls)}] + {entry.filename} ({len(data) / 1024:.0f}KB)")

        self.store.save_manifest(manifest)
        return stats
