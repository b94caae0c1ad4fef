"""
Classification pipeline.

Sends every pending manifest image to the vision model, keeps the results
that are relevant in the analysis set and marks each manifest entry with its
outcome.

Usage:
    mudo-analyze                  # all pending images
    mudo-analyze --limit 10       # at most 10
    mudo-analyze --reanalyze      # every image in the manifest again
"""

import os
import sys
import argparse
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from PIL import Image
from tqdm import tqdm

from mudozzal.collection.base_collector import compute_hash
from mudozzal.config import load_config, load_env, require_env, DEFAULT_CONFIG_PATH
from mudozzal.errors import MissingCredentialsError, QuotaExhaustedError
from mudozzal.processing.json_extractor import extract_json_object
from mudozzal.processing.prompts import build_prompt
from mudozzal.processing.vision_model import VisionModel, GeminiVisionModel, mime_type_for
from mudozzal.store.content_store import ContentStore
from mudozzal.store.records import (
    Manifest, ManifestEntry, AnalysisEntry,
    STATUS_PENDING, STATUS_REJECTED, STATUS_ACCEPTED,
)
from mudozzal.throttle import RateLimited

logger = logging.getLogger(__name__)


@dataclass
class ClassificationStats:
    """Counters reported at the end of a classification run."""
    candidates: int = 0
    accepted: int = 0
    rejected: int = 0
    prefiltered: int = 0
    failed: int = 0
    missing: int = 0
    quota_exhausted: bool = False


class Classifier(RateLimited):
    """
    Runs the vision model over pending images.

    Outcomes per image:
      accepted  -> analysis entry written, manifest status "accepted"
      rejected  -> no analysis entry, manifest status "rejected" (never retried)
      failed    -> nothing recorded, image stays pending for the next run

    A quota-exhaustion error ends the batch; progress made so far is saved.
    """

    def __init__(self, store: ContentStore, model: VisionModel,
                 min_interval: float = 1.5, min_aspect_ratio: float = 0.4,
                 max_aspect_ratio: float = 2.5):
        """
        Args:
            store: Content store with the manifest, analysis set and images.
            model: Vision model used for classification.
            min_interval: Minimum seconds between model calls.
            min_aspect_ratio: Narrowest width/height accepted without a model call.
            max_aspect_ratio: Widest width/height accepted without a model call.
        """
        self.store = store
        self.model = model
        self.min_interval = min_interval
        self.min_aspect_ratio = min_aspect_ratio
        self.max_aspect_ratio = max_aspect_ratio
        self._last_request_time = 0.0

    # ------------------------------------------------------------------
    # Candidate selection
    # ------------------------------------------------------------------

    def _adopt_unmanifested(self, manifest: Manifest, analyzed: set) -> List[ManifestEntry]:
        """Add image files that are on disk but in neither manifest nor analysis set."""
        adopted = []
        for filename in self.store.list_images():
            if manifest.has_filename(filename) or filename in analyzed:
                continue
            try:
                content_hash = compute_hash(self.store.read_image(filename))
            except OSError as e:
                logger.warning(f"Cannot read {filename}: {e}")
                continue
            if manifest.has_hash(content_hash):
                logger.warning(f"{filename} duplicates an image already in the manifest, skipping")
                continue
            entry = ManifestEntry(filename=filename, source_url="", content_hash=content_hash)
            manifest.add(entry)
            adopted.append(entry)

        if adopted:
            logger.info(f"Adopted {len(adopted)} image(s) found only on disk")
        return adopted

    def select_candidates(self, manifest: Manifest, analysis: List[AnalysisEntry],
                          reanalyze: bool = False,
                          limit: Optional[int] = None) -> List[ManifestEntry]:
        """
        Pick the manifest entries to classify in this run.

        Args:
            manifest: Loaded manifest (may gain adopted entries).
            analysis: Loaded analysis set.
            reanalyze: Select every manifest entry.
            limit: Maximum number of candidates.
        """
        analyzed = {a.filename for a in analysis}

        if reanalyze:
            candidates = list(manifest.images)
        else:
            candidates = [
                e for e in manifest.images
                if e.status == STATUS_PENDING and not e.analyzed and e.filename not in analyzed
            ]

        if not candidates:
            candidates = self._adopt_unmanifested(manifest, analyzed)

        if limit is not None:
            candidates = candidates[:max(0, limit)]
        return candidates

    # ------------------------------------------------------------------
    # Per-image steps
    # ------------------------------------------------------------------

    def _dimensions(self, entry: ManifestEntry) -> Optional[Tuple[int, int]]:
        """Width and height from the manifest, else from the image header."""
        if entry.width and entry.height:
            return entry.width, entry.height
        try:
            with Image.open(self.store.image_path(entry.filename)) as img:
                entry.width, entry.height = img.size
        except (OSError, Image.DecompressionBombError):
            return None
        return entry.width, entry.height

    def passes_prefilter(self, entry: ManifestEntry) -> bool:
        """False when the aspect ratio marks the image as a panorama or multi-panel strip."""
        dims = self._dimensions(entry)
        if dims is None or not dims[1]:
            return True
        ratio = dims[0] / dims[1]
        return self.min_aspect_ratio <= ratio <= self.max_aspect_ratio

    @staticmethod
    def _drop_entry(analysis: List[AnalysisEntry], filename: str):
        analysis[:] = [a for a in analysis if a.filename != filename]

    def _reject(self, entry: ManifestEntry, analysis: List[AnalysisEntry]):
        self._drop_entry(analysis, entry.filename)
        entry.mark(STATUS_REJECTED)

    def _accept(self, entry: ManifestEntry, analysis: List[AnalysisEntry],
                result: Dict[str, Any]) -> AnalysisEntry:
        record = AnalysisEntry.from_model_result(
            entry.filename, result,
            source_url=entry.source_url,
            keyword=entry.keyword,
        )
        self._drop_entry(analysis, entry.filename)
        analysis.append(record)
        entry.mark(STATUS_ACCEPTED)
        return record

    def classify_image(self, entry: ManifestEntry) -> Optional[Dict[str, Any]]:
        """
        Ask the model about one image.

        Returns:
            The parsed JSON object, or None when the answer held no object.

        Raises:
            QuotaExhaustedError, ClassificationError, OSError
        """
        data = self.store.read_image(entry.filename)
        self._rate_limit()
        raw = self.model.classify(data, mime_type_for(entry.filename),
                                  build_prompt(entry.keyword))
        return extract_json_object(raw)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run(self, reanalyze: bool = False, limit: Optional[int] = None) -> ClassificationStats:
        """
        Classify a batch of images and persist the outcome.

        Args:
            reanalyze: Classify every manifest entry again.
            limit: Maximum number of images to process.
        """
        stats = ClassificationStats()
        manifest = self.store.load_manifest()
        analysis = self.store.load_analysis()

        candidates = self.select_candidates(manifest, analysis, reanalyze, limit)
        stats.candidates = len(candidates)

        if not candidates:
            logger.info("No images to analyze")
            return stats

        logger.info(f"Analyzing {len(candidates)} image(s)")

        try:
            for i, entry in enumerate(tqdm(candidates, desc="Analyzing", unit="img")):
                tag = f"[{i + 1}/{len(candidates)}] {entry.filename}"

                if not os.path.exists(self.store.image_path(entry.filename)):
                    logger.warning(f"{tag}: image file missing, skipping")
                    stats.missing += 1
                    continue

                if not self.passes_prefilter(entry):
                    logger.info(f"{tag}: aspect ratio out of range, rejected")
                    self._reject(entry, analysis)
                    stats.prefiltered += 1
                    continue

                try:
                    result = self.classify_image(entry)
                    if not result or not result.get("relevant"):
                        self._reject(entry, analysis)
                        stats.rejected += 1
                        logger.info(f"{tag}: not relevant, rejected")
                        continue
                    record = self._accept(entry, analysis, result)
                except QuotaExhaustedError:
                    raise
                except Exception as e:
                    logger.warning(f"{tag}: analysis failed, will retry next run: {e}")
                    stats.failed += 1
                    continue

                stats.accepted += 1
                logger.info(f'{tag}: "{record.title}" - {record.member} ({record.emotion})')

        except QuotaExhaustedError as e:
            stats.quota_exhausted = True
            logger.error(f"API quota exhausted, stopping batch. Retry later. ({e})")

        finally:
            self.store.save_manifest(manifest)
            self.store.save_analysis(analysis)

        return stats


def report(stats: ClassificationStats, total_analysis: int):
    print(f"\n{'='*60}")
    print(f"Analysis Complete" + (" (stopped: quota exhausted)" if stats.quota_exhausted else ""))
    print(f"{'='*60}")
    print(f"Candidates:       {stats.candidates:>10,}")
    print(f"Accepted:         {stats.accepted:>10,}")
    print(f"Rejected:         {stats.rejected:>10,}")
    print(f"Pre-filtered:     {stats.prefiltered:>10,}")
    print(f"Failed (retry):   {stats.failed:>10,}")
    print(f"Missing files:    {stats.missing:>10,}")
    print(f"Analysis total:   {total_analysis:>10,}")
    print(f"{'='*60}")
    if stats.quota_exhausted:
        print("Quota exhausted: progress saved, run again later to continue.")


def build_classifier(config: Dict[str, Any], model: Optional[VisionModel] = None) -> Classifier:
    """
    Build a Classifier from the pipeline config.

    Raises:
        MissingCredentialsError: if no model is given and GEMINI_API_KEY is unset.
    """
    settings = config["classification"]
    if model is None:
        model = GeminiVisionModel(
            api_key=require_env("GEMINI_API_KEY"),
            model=settings["model"],
            temperature=settings["temperature"],
            max_output_tokens=settings["max_output_tokens"],
        )
    return Classifier(
        ContentStore(config),
        model,
        min_interval=settings["request_interval"],
        min_aspect_ratio=settings["min_aspect_ratio"],
        max_aspect_ratio=settings["max_aspect_ratio"],
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Classify collected images with Gemini Vision")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--limit", type=int, default=None,
                        help="Maximum number of images to analyze")
    parser.add_argument("--reanalyze", action="store_true",
                        help="Analyze every image in the manifest again")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    load_env()
    config = load_config(args.config)

    try:
        classifier = build_classifier(config)
    except MissingCredentialsError as e:
        logger.error(f"{e}. Set GEMINI_API_KEY=... in .env.local")
        return 1

    stats = classifier.run(reanalyze=args.reanalyze, limit=args.limit)
    report(stats, len(classifier.store.load_analysis()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
