"""
Flat-file content store for the pipeline's three collections:
download manifest, analysis set and published dataset (+ image assets).

Every load falls back to an empty collection when the file is missing.
Every save rewrites the whole file (temporary sibling, then replace).
There is no locking; run one instance of a stage at a time.
"""

import os
import json
import shutil
import logging
from typing import List, Dict, Any

from mudozzal.config import resolve_path
from mudozzal.store.records import Manifest, AnalysisEntry, PublishedMeme

logger = logging.getLogger(__name__)


def ensure_dir(path: str) -> str:
    """Create a directory (and parents) if needed and return it."""
    if path:
        os.makedirs(path, exist_ok=True)
    return path


def _read_json(path: str, default: Any) -> Any:
    if not os.path.exists(path):
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: str, data: Any):
    ensure_dir(os.path.dirname(path))
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class ContentStore:
    """
    Owns the on-disk layout of the pipeline.

    Paths are resolved from the `paths` section of the pipeline config so a
    test can point the whole store at a temporary directory.
    """

    def __init__(self, config: Dict[str, Any]):
        self.images_dir = resolve_path(config, "images_dir")
        self.manifest_path = resolve_path(config, "manifest")
        self.analysis_path = resolve_path(config, "analysis")
        self.published_path = resolve_path(config, "published")
        self.published_meta_path = resolve_path(config, "published_meta")
        self.public_assets_dir = resolve_path(config, "public_assets_dir")

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def load_manifest(self) -> Manifest:
        data = _read_json(self.manifest_path, {"images": [], "hashes": []})
        analyzed = None
        if any("status" not in img for img in data.get("images", [])):
            analyzed = {a.filename for a in self.load_analysis()}
        return Manifest.from_dict(data, analyzed_filenames=analyzed)

    def save_manifest(self, manifest: Manifest):
        _write_json(self.manifest_path, manifest.to_dict())
        logger.debug(f"Saved manifest ({len(manifest)} images) to {self.manifest_path}")

    # ------------------------------------------------------------------
    # Analysis set
    # ------------------------------------------------------------------

    def load_analysis(self) -> List[AnalysisEntry]:
        return [AnalysisEntry.from_dict(d) for d in _read_json(self.analysis_path, [])]

    def save_analysis(self, entries: List[AnalysisEntry]):
        _write_json(self.analysis_path, [e.to_dict() for e in entries])
        logger.debug(f"Saved {len(entries)} analysis entries to {self.analysis_path}")

    # ------------------------------------------------------------------
    # Published dataset
    # ------------------------------------------------------------------

    def has_published_meta(self) -> bool:
        return os.path.exists(self.published_meta_path)

    def load_published(self, with_provenance: bool = True) -> List[PublishedMeme]:
        """
        Load the published dataset.

        Args:
            with_provenance: Read the internal file that keeps _sourceFile.
                Otherwise read the public file.
        """
        path = self.published_meta_path if with_provenance else self.published_path
        return [PublishedMeme.from_dict(d) for d in _read_json(path, [])]

    def save_published(self, memes: List[PublishedMeme]):
        """Write the public dataset and the provenance dataset."""
        _write_json(self.published_path, [m.to_dict(with_provenance=False) for m in memes])
        _write_json(self.published_meta_path, [m.to_dict(with_provenance=True) for m in memes])

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def image_path(self, filename: str) -> str:
        return os.path.join(self.images_dir, filename)

    def public_asset_path(self, filename: str) -> str:
        return os.path.join(self.public_assets_dir, filename)

    def write_image(self, filename: str, data: bytes) -> str:
        path = self.image_path(filename)
        ensure_dir(self.images_dir)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def read_image(self, filename: str) -> bytes:
        with open(self.image_path(filename), "rb") as f:
            return f.read()

    def list_images(self) -> List[str]:
        """Filenames in the raw images directory, dot-files excluded."""
        if not os.path.isdir(self.images_dir):
            return []
        return sorted(
            name for name in os.listdir(self.images_dir)
            if not name.startswith(".") and os.path.isfile(self.image_path(name))
        )

    @staticmethod
    def copy_asset(src_path: str, dest_path: str) -> str:
        """Copy an image file, creating the destination directory."""
        ensure_dir(os.path.dirname(dest_path))
        shutil.copyfile(src_path, dest_path)
        return dest_path
