"""
Collection pipeline: entry point for both intake modes.

Usage:
    mudo-collect keyword-search            # search configured keywords (SERPAPI_KEY)
    mudo-collect url-list urls.txt         # download URLs listed in a file
    mudo-collect url-list urls.txt --append
"""

import os
import sys
import argparse
import logging
from typing import Dict, Any, Optional, List

from mudozzal.config import load_config, load_env, require_env, DEFAULT_CONFIG_PATH
from mudozzal.collection.base_collector import CollectionStats
from mudozzal.collection.image_search import ImageSearch, SerpApiImageSearch
from mudozzal.collection.keyword_collector import KeywordCollector
from mudozzal.collection.url_collector import UrlListCollector, read_url_file
from mudozzal.errors import MissingCredentialsError
from mudozzal.store.content_store import ContentStore, ensure_dir

logger = logging.getLogger(__name__)


class CollectionPipeline:
    """
    Wires the collectors to the content store using the pipeline config.

    The manifest is append-only: every run adds to it and nothing is removed.
    """

    def __init__(self, config: Dict[str, Any], session=None):
        self.config = config
        self.settings = config["collection"]
        self.store = ContentStore(config)
        self.session = session
        ensure_dir(self.store.images_dir)

    def _common_kwargs(self) -> Dict[str, Any]:
        return {
            "max_retries": self.settings["max_retries"],
            "request_timeout": self.settings["request_timeout"],
            "session": self.session,
        }

    def run_keyword_search(self, search: Optional[ImageSearch] = None,
                           keywords: Optional[List[str]] = None) -> CollectionStats:
        """
        Collect images for every configured keyword.

        Args:
            search: Search provider. Defaults to SerpAPI with SERPAPI_KEY.
            keywords: Override the configured keyword list.

        Raises:
            MissingCredentialsError: if no provider is given and SERPAPI_KEY is unset.
        """
        if search is None:
            search = SerpApiImageSearch(
                api_key=require_env("SERPAPI_KEY"),
                num_results=self.settings["results_per_keyword"],
            )
        keywords = keywords if keywords is not None else list(self.settings["keywords"])
        if not keywords:
            logger.warning("No keywords configured (collection.keywords)")

        collector = KeywordCollector(
            self.store,
            search,
            min_bytes=self.settings["min_bytes"],
            max_bytes=self.settings["max_bytes"],
            min_interval=self.settings["keyword_interval"],
            **self._common_kwargs(),
        )
        return collector.collect(keywords)

    def run_url_list(self, urls: List[str]) -> CollectionStats:
        """Collect images from an explicit list of URLs."""
        collector = UrlListCollector(
            self.store,
            min_interval=self.settings["url_interval"],
            **self._common_kwargs(),
        )
        return collector.collect(urls)

    def report(self, stats: CollectionStats):
        total = len(self.store.load_manifest())
        print(f"\n{'='*60}")
        print(f"Collection Complete")
        print(f"{'='*60}")
        print(f"Newly collected:      {stats.collected:>10,}")
        print(f"Duplicates skipped:   {stats.duplicates:>10,}")
        print(f"Size filtered:        {stats.filtered:>10,}")
        print(f"Failed downloads:     {stats.failed:>10,}")
        print(f"Manifest total:       {total:>10,}")
        print(f"{'='*60}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Collect candidate meme images")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH,
                        help=f"Pipeline config (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="mode")
    keyword = sub.add_parser("keyword-search", help="Search configured keywords via SerpAPI")
    keyword.add_argument("--append", action="store_true",
                         help="Append to the existing manifest (always the case)")
    urls = sub.add_parser("url-list", help="Download URLs listed in a file")
    urls.add_argument("path", help="Text file with one URL per line")
    urls.add_argument("--append", action="store_true",
                      help="Append to the existing manifest (always the case)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.mode is None:
        parser.print_help()
        return 0

    load_env()
    config = load_config(args.config)
    pipeline = CollectionPipeline(config)

    if args.mode == "keyword-search":
        try:
            stats = pipeline.run_keyword_search()
        except MissingCredentialsError as e:
            logger.error(f"{e}. Export it or add it to .env.local")
            return 1
    else:
        if not os.path.exists(args.path):
            logger.error(f"URL file not found: {args.path}")
            return 1
        stats = pipeline.run_url_list(read_url_file(args.path))

    pipeline.report(stats)
    return 0


if __name__ == "__main__":
    sys.exit(main())
