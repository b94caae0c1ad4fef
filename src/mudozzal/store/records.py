"""
Record types persisted by the content store.

JSON keys keep the camelCase names used by the published dataset and the
browsing front end; Python attributes are snake_case.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Set

STATUS_PENDING = "pending"
STATUS_REJECTED = "rejected"
STATUS_ACCEPTED = "accepted"

UNKNOWN = "알수없음"
UNTITLED = "무제"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def as_tag_list(value: Any) -> List[str]:
    """
    Normalize a tags value to a list of non-empty strings.

    A comma-separated string is split, a scalar becomes a one-item list and
    anything else that is not a list or tuple is dropped.
    """
    if value is None or isinstance(value, bool):
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    elif isinstance(value, (int, float)):
        items = [value]
    else:
        return []
    return [str(t).strip() for t in items if t is not None and str(t).strip()]


@dataclass
class ManifestEntry:
    """One collected image candidate."""
    filename: str
    source_url: str
    content_hash: str
    keyword: str = ""
    source_title: str = ""
    source_site: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    downloaded_at: str = field(default_factory=utc_timestamp)
    analyzed: bool = False
    status: str = STATUS_PENDING

    def mark(self, status: str):
        """Record a terminal classification outcome."""
        self.status = status
        self.analyzed = status != STATUS_PENDING

    @property
    def aspect_ratio(self) -> Optional[float]:
        if not self.width or not self.height:
            return None
        return self.width / self.height

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "filename": self.filename,
            "sourceUrl": self.source_url,
            "sourceTitle": self.source_title,
            "sourceSite": self.source_site,
            "keyword": self.keyword,
            "hash": self.content_hash,
        }
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        data["downloadedAt"] = self.downloaded_at
        data["analyzed"] = self.analyzed
        data["status"] = self.status
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        analyzed = bool(data.get("analyzed", False))
        status = data.get("status") or (STATUS_ACCEPTED if analyzed else STATUS_PENDING)
        return cls(
            filename=data["filename"],
            source_url=data.get("sourceUrl", ""),
            content_hash=data.get("hash", ""),
            keyword=data.get("keyword", ""),
            source_title=data.get("sourceTitle", ""),
            source_site=data.get("sourceSite", ""),
            width=data.get("width"),
            height=data.get("height"),
            downloaded_at=data.get("downloadedAt", ""),
            analyzed=analyzed,
            status=status,
        )


class Manifest:
    """
    Ledger of collected images plus the content-hash dedup index.

    The hash list is kept in insertion order for the on-disk format and
    mirrored in a set for O(1) membership checks.
    """

    def __init__(self, images: Optional[List[ManifestEntry]] = None,
                 hashes: Optional[List[str]] = None):
        self.images: List[ManifestEntry] = list(images or [])
        self.hashes: List[str] = []
        self._hash_index: Set[str] = set()
        self._by_filename: Dict[str, ManifestEntry] = {}

        for h in hashes or []:
            self._index_hash(h)
        for entry in self.images:
            self._by_filename[entry.filename] = entry
            self._index_hash(entry.content_hash)

    def _index_hash(self, content_hash: str):
        if content_hash and content_hash not in self._hash_index:
            self._hash_index.add(content_hash)
            self.hashes.append(content_hash)

    def __len__(self) -> int:
        return len(self.images)

    def has_hash(self, content_hash: str) -> bool:
        return content_hash in self._hash_index

    def has_filename(self, filename: str) -> bool:
        return filename in self._by_filename

    def get(self, filename: str) -> Optional[ManifestEntry]:
        return self._by_filename.get(filename)

    def add(self, entry: ManifestEntry):
        """
        Append a new entry.

        Raises:
            ValueError: if the hash or filename is already present.
        """
        if self.has_hash(entry.content_hash):
            raise ValueError(f"Duplicate content hash {entry.content_hash}")
        if self.has_filename(entry.filename):
            raise ValueError(f"Duplicate filename {entry.filename}")
        self.images.append(entry)
        self._by_filename[entry.filename] = entry
        self._index_hash(entry.content_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [entry.to_dict() for entry in self.images],
            "hashes": list(self.hashes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  analyzed_filenames: Optional[Set[str]] = None) -> "Manifest":
        """
        Build a manifest from its JSON form.

        Args:
            data: Parsed manifest.json.
            analyzed_filenames: Filenames present in the analysis set. Used to
                tell accepted from rejected for entries written before the
                status field existed.
        """
        images = []
        for raw in data.get("images", []):
            entry = ManifestEntry.from_dict(raw)
            if "status" not in raw and entry.analyzed and analyzed_filenames is not None:
                entry.status = (STATUS_ACCEPTED if entry.filename in analyzed_filenames
                                else STATUS_REJECTED)
            images.append(entry)
        return cls(images=images, hashes=data.get("hashes", []))


@dataclass
class AnalysisEntry:
    """Classification result for one manifest filename."""
    filename: str
    relevant: bool
    title: str = ""
    tags: List[str] = field(default_factory=list)
    situation: str = ""
    description: str = ""
    member: str = ""
    episode: str = ""
    emotion: str = ""
    source_url: str = ""
    keyword: str = ""
    analyzed_at: str = field(default_factory=utc_timestamp)

    @classmethod
    def from_model_result(cls, filename: str, result: Dict[str, Any],
                          source_url: str = "", keyword: str = "") -> "AnalysisEntry":
        """Build an entry from the JSON object returned by the vision model."""
        relevant = bool(result.get("relevant"))
        if not relevant:
            return cls(filename=filename, relevant=False,
                       source_url=source_url, keyword=keyword)

        situation = result.get("situation") or ""
        if isinstance(situation, list):
            situation = ", ".join(str(s) for s in situation)

        return cls(
            filename=filename,
            relevant=True,
            title=str(result.get("title") or ""),
            tags=as_tag_list(result.get("tags")),
            situation=str(situation),
            description=str(result.get("description") or ""),
            member=str(result.get("member") or ""),
            episode=str(result.get("episode") or ""),
            emotion=str(result.get("emotion") or ""),
            source_url=source_url,
            keyword=keyword,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"filename": self.filename, "relevant": self.relevant}
        if self.relevant:
            data.update({
                "title": self.title,
                "tags": list(self.tags),
                "situation": self.situation,
                "description": self.description,
                "member": self.member,
                "episode": self.episode,
                "emotion": self.emotion,
            })
        data["sourceUrl"] = self.source_url
        data["keyword"] = self.keyword
        data["analyzedAt"] = self.analyzed_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisEntry":
        # Entries without the flag are relevant; only an explicit false discards.
        return cls(
            filename=data["filename"],
            relevant=data.get("relevant") is not False,
            title=data.get("title", ""),
            tags=as_tag_list(data.get("tags")),
            situation=data.get("situation", ""),
            description=data.get("description", ""),
            member=data.get("member", ""),
            episode=data.get("episode", ""),
            emotion=data.get("emotion", ""),
            source_url=data.get("sourceUrl", ""),
            keyword=data.get("keyword", ""),
            analyzed_at=data.get("analyzedAt", ""),
        )


@dataclass
class PublishedMeme:
    """One entry of the public dataset."""
    id: str
    title: str
    tags: List[str]
    situation: str
    episode: str
    description: str
    image_url: str
    member: str
    source_file: Optional[str] = None

    def to_dict(self, with_provenance: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "tags": list(self.tags),
            "situation": self.situation,
            "episode": self.episode,
            "description": self.description,
            "imageUrl": self.image_url,
            "member": self.member,
        }
        if with_provenance and self.source_file is not None:
            data["_sourceFile"] = self.source_file
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublishedMeme":
        return cls(
            id=str(data["id"]),
            title=data.get("title", UNTITLED),
            tags=as_tag_list(data.get("tags")),
            situation=data.get("situation", ""),
            episode=data.get("episode", UNKNOWN),
            description=data.get("description", ""),
            image_url=data.get("imageUrl", ""),
            member=data.get("member", UNKNOWN),
            source_file=data.get("_sourceFile"),
        )
