"""
Dataset publisher.

Merges relevant analysis entries into the public dataset (data/memes.json),
copies their images to public/memes/ as meme_<id><ext>, and keeps an internal
copy with _sourceFile provenance (raw/memes_with_meta.json) so the next run
only adds what is new.

Usage:
    mudo-build                 # merge new entries
    mudo-build --rebuild       # renumber everything from 1
    mudo-build --dry-run       # report only, write nothing
"""

import os
import sys
import argparse
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from mudozzal.config import load_config, DEFAULT_CONFIG_PATH
from mudozzal.store.content_store import ContentStore, ensure_dir
from mudozzal.store.records import AnalysisEntry, PublishedMeme, UNKNOWN, UNTITLED

logger = logging.getLogger(__name__)


def next_id(memes: List[PublishedMeme]) -> int:
    """Max numeric id + 1, or 1 for an empty dataset."""
    ids = [int(m.id) for m in memes if str(m.id).isdigit()]
    return max(ids) + 1 if ids else 1


@dataclass
class PublishResult:
    """Outcome of a publish run."""
    analysis_total: int = 0
    relevant_total: int = 0
    added: List[PublishedMeme] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    dataset_size: int = 0
    written: bool = False
    provenance_missing: bool = False


class Publisher:
    """
    Builds the published dataset from the analysis set.

    Ids are assigned in analysis order, starting after the highest id
    already published. An entry whose image is missing is skipped and does
    not consume an id.
    """

    def __init__(self, store: ContentStore, image_url_prefix: str = "/memes"):
        self.store = store
        self.image_url_prefix = image_url_prefix.rstrip("/")

    def _load_existing(self) -> Optional[List[PublishedMeme]]:
        """
        Published entries with provenance, or None when only the public
        dataset exists and published source files cannot be told apart.
        """
        if self.store.has_published_meta():
            return self.store.load_published(with_provenance=True)
        if self.store.load_published(with_provenance=False):
            return None
        return []

    def _build_meme(self, meme_id: int, entry: AnalysisEntry, dest_name: str) -> PublishedMeme:
        return PublishedMeme(
            id=str(meme_id),
            title=entry.title or UNTITLED,
            tags=list(entry.tags or []),
            situation=entry.situation or "",
            episode=entry.episode or UNKNOWN,
            description=entry.description or "",
            image_url=f"{self.image_url_prefix}/{dest_name}",
            member=entry.member or UNKNOWN,
            source_file=entry.filename,
        )

    def publish(self, rebuild: bool = False, dry_run: bool = False) -> PublishResult:
        """
        Merge analysis results into the published dataset.

        Args:
            rebuild: Discard the existing dataset and number from 1.
            dry_run: Compute and log everything but write and copy nothing.
        """
        result = PublishResult()
        analysis = self.store.load_analysis()
        result.analysis_total = len(analysis)

        if not analysis:
            logger.info("Analysis set is empty, nothing to build")
            return result

        relevant = [a for a in analysis if a.relevant is not False]
        result.relevant_total = len(relevant)

        existing = [] if rebuild else self._load_existing()
        if existing is None:
            logger.error(f"{self.store.published_path} exists without "
                         f"{self.store.published_meta_path}; cannot tell which images "
                         f"are already published. Run with --rebuild.")
            result.provenance_missing = True
            return result
        published_files = {m.source_file for m in existing if m.source_file}
        to_add = [a for a in relevant if a.filename not in published_files]

        if not to_add and not rebuild:
            logger.info("No new memes to add")
            result.dataset_size = len(existing)
            return result

        logger.info(f"Building dataset{' (dry run)' if dry_run else ''}: "
                    f"{len(analysis)} analyzed, {len(relevant)} relevant, "
                    f"{len(to_add)} to add")

        meme_id = next_id(existing)
        if not dry_run:
            ensure_dir(self.store.public_assets_dir)

        for entry in to_add:
            src_path = self.store.image_path(entry.filename)
            if not os.path.exists(src_path):
                logger.warning(f"{entry.filename}: source image missing, skipped")
                result.missing.append(entry.filename)
                continue

            ext = os.path.splitext(entry.filename)[1].lower()
            dest_name = f"meme_{meme_id}{ext}"
            meme = self._build_meme(meme_id, entry, dest_name)

            if not dry_run:
                self.store.copy_asset(src_path, self.store.public_asset_path(dest_name))

            result.added.append(meme)
            logger.info(f'[{meme.id}] "{meme.title}" - {meme.member}')
            meme_id += 1

        final = existing + result.added
        result.dataset_size = len(final)

        if dry_run:
            logger.info("Dry run complete, no files changed")
            return result

        self.store.save_published(final)
        result.written = True
        return result


def report(result: PublishResult, store: ContentStore, dry_run: bool):
    print(f"\n{'='*60}")
    print(f"Build Complete" + (" (DRY RUN)" if dry_run else ""))
    print(f"{'='*60}")
    print(f"Analysis entries: {result.analysis_total:>10,}")
    print(f"Relevant:         {result.relevant_total:>10,}")
    print(f"Added:            {len(result.added):>10,}")
    print(f"Missing images:   {len(result.missing):>10,}")
    print(f"Dataset size:     {result.dataset_size:>10,}")
    if result.provenance_missing:
        print("\n  Provenance file missing: nothing written, rerun with --rebuild")
    if result.written:
        print(f"\n  {store.published_path}")
        print(f"  {store.published_meta_path}")
        print(f"  {store.public_assets_dir}/")
    print(f"{'='*60}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Publish analyzed memes to the dataset")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--rebuild", action="store_true",
                        help="Rebuild the dataset from scratch, ids from 1")
    parser.add_argument("--dry-run", action="store_true",
                        help="Preview without writing files or copying images")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config: Dict[str, Any] = load_config(args.config)
    publisher = Publisher(ContentStore(config),
                          image_url_prefix=config["publishing"]["image_url_prefix"])
    result = publisher.publish(rebuild=args.rebuild, dry_run=args.dry_run)
    report(result, publisher.store, args.dry_run)
    return 1 if result.provenance_missing else 0


if __name__ == "__main__":
    sys.exit(main())
