"""
Base collector with rate limiting, retry logic, download and content-hash
deduplication against the manifest.
"""

import os
import time
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests

from mudozzal.errors import DownloadError
from mudozzal.store.content_store import ContentStore
from mudozzal.store.records import Manifest, ManifestEntry
from mudozzal.throttle import RateLimited

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                   "AppleWebKit/537.36 (KHTML, like Gecko)"),
    "Accept": "image/*,*/*",
}

VALID_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")
DEFAULT_EXTENSION = ".jpg"
FILENAME_PREFIX = "mudo"


def compute_hash(data: bytes) -> str:
    """Content hash used as the dedup key (MD5 hex digest of the raw bytes)."""
    return hashlib.md5(data).hexdigest()


def extension_from_url(url: str) -> str:
    """File extension from the URL path, or .jpg when it is not an image type."""
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    return ext if ext in VALID_EXTENSIONS else DEFAULT_EXTENSION


@dataclass
class CollectionStats:
    """Counters reported at the end of a collection run."""
    collected: int = 0
    duplicates: int = 0
    filtered: int = 0
    failed: int = 0


class BaseCollector(RateLimited, ABC):
    """
    Abstract base class for image collectors.

    Subclasses decide where candidate URLs come from; this class fetches the
    bytes, rejects duplicates by content hash and appends accepted images to
    the manifest.
    """

    def __init__(
        self,
        store: ContentStore,
        min_interval: float = 0.0,
        max_retries: int = 3,
        request_timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the base collector.

        Args:
            store: Content store holding the manifest and images directory.
            min_interval: Minimum seconds between rate-limited requests.
            max_retries: Attempts for calls wrapped in _retry_with_backoff.
            request_timeout: Per-request timeout for image downloads.
            session: HTTP session (injectable for tests).
        """
        self.store = store
        self.min_interval = min_interval
        self.max_retries = max(1, max_retries)
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self._last_request_time = 0.0
        self.source_name = self.__class__.__name__.replace("Collector", "").lower()

    def _retry_with_backoff(self, func, *args, **kwargs):
        """
        Execute a function with retry logic and exponential backoff.

        Retries with delays of 1s, 2s, 4s ... and re-raises the last error.
        """
        for attempt in range(self.max_retries):
            try:
                self._rate_limit()
                return func(*args, **kwargs)
            except Exception as e:
                wait_time = 2 ** attempt
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Attempt {attempt + 1}/{self.max_retries} failed for "
                        f"{self.source_name}: {e}. Retrying in {wait_time}s..."
                    )
                    time.sleep(wait_time)
                else:
                    logger.error(
                        f"All {self.max_retries} attempts failed for "
                        f"{self.source_name}: {e}"
                    )
                    raise

    def _download_image(self, url: str) -> bytes:
        """
        Fetch raw image bytes. Redirects are followed.

        Raises:
            DownloadError: on connection errors, timeouts and non-200 responses.
        """
        try:
            response = self.session.get(url, headers=HEADERS,
                                        timeout=self.request_timeout,
                                        allow_redirects=True)
        except requests.RequestException as e:
            raise DownloadError(f"{url}: {e}") from e

        if response.status_code != 200:
            raise DownloadError(f"{url}: HTTP {response.status_code}")
        return response.content

    def _generate_filename(self, manifest: Manifest, content_hash: str, ext: str) -> str:
        """mudo_<epoch ms>_<hash prefix><ext>, unique within the manifest."""
        stamp = int(time.time() * 1000)
        prefix_len = 8
        filename = f"{FILENAME_PREFIX}_{stamp}_{content_hash[:prefix_len]}{ext}"
        while manifest.has_filename(filename) or os.path.exists(self.store.image_path(filename)):
            prefix_len += 4
            if prefix_len > len(content_hash):
                stamp += 1
                prefix_len = 8
            filename = f"{FILENAME_PREFIX}_{stamp}_{content_hash[:prefix_len]}{ext}"
        return filename

    def _accept(self, manifest: Manifest, data: bytes, url: str, keyword: str,
                title: str = "", site: str = "", width: Optional[int] = None,
                height: Optional[int] = None) -> Optional[ManifestEntry]:
        """
        Store an image and append it to the manifest unless its hash is known.

        Returns:
            The new ManifestEntry, or None for a duplicate.
        """
        content_hash = compute_hash(data)
        if manifest.has_hash(content_hash):
            return None

        filename = self._generate_filename(manifest, content_hash, extension_from_url(url))
        self.store.write_image(filename, data)

        entry = ManifestEntry(
            filename=filename,
            source_url=url,
            content_hash=content_hash,
            keyword=keyword,
            source_title=title,
            source_site=site,
            width=width,
            height=height,
        )
        manifest.add(entry)
        return entry

    @abstractmethod
    def collect(self, *args, **kwargs) -> CollectionStats:
        """Run one collection pass and return its counters."""
        pass
