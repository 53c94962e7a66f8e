from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional

from PIL import Image


class AssetKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    MODEL = "model"


class ThumbnailStrategy(str, Enum):
    BITMAP = "bitmap"   # computed once per identity and cached
    RENDER = "render"   # presentation layer renders the content live
    NONE = "none"       # always a placeholder


class CollisionPolicy(str, Enum):
    SKIP = "skip"       # first write wins
    REPLACE = "replace"
    RENAME = "rename"


@dataclass(frozen=True)
class KindPolicy:
    """
    Per-kind configuration: where assets live, what they may be called,
    and how they are previewed.
    """
    kind: AssetKind
    subdirectory: Optional[str]     # None = store root
    extensions: FrozenSet[str]      # lower-case, with leading dot
    thumbnail: ThumbnailStrategy
    bundle_extensions: FrozenSet[str] = frozenset()

    def accepts(self, name: str) -> bool:
        return Path(name).suffix.lower() in self.extensions

    def accepts_bundle(self, name: str) -> bool:
        return Path(name).suffix.lower() in self.bundle_extensions


@dataclass(frozen=True)
class AssetRecord:
    """
    One stored asset as seen by the last scan.
    """
    identity: str           # store-relative path, stable across rescans
    display_name: str
    storage_path: Path
    kind: AssetKind
    strategy: ThumbnailStrategy = ThumbnailStrategy.BITMAP
    thumbnail: Optional[Image.Image] = field(default=None, compare=False, repr=False)
    bundled: bool = False
    size_bytes: Optional[int] = None
    modified_at: Optional[datetime] = None

    @property
    def preview(self) -> str:
        """What the presentation layer should draw for this asset."""
        if self.strategy is ThumbnailStrategy.RENDER:
            return "render"
        if self.thumbnail is not None:
            return "bitmap"
        return "placeholder"


class IngestStatus(str, Enum):
    IMPORTED = "imported"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    REPLACED = "replaced"
    RENAMED = "renamed"
    ACCESS_DENIED = "access_denied"
    COPY_FAILED = "copy_failed"
    UNSUPPORTED_TYPE = "unsupported_type"
    STORAGE_UNAVAILABLE = "storage_unavailable"


STORED_STATUSES = {IngestStatus.IMPORTED, IngestStatus.REPLACED, IngestStatus.RENAMED}
FAILED_STATUSES = {
    IngestStatus.ACCESS_DENIED,
    IngestStatus.COPY_FAILED,
    IngestStatus.UNSUPPORTED_TYPE,
    IngestStatus.STORAGE_UNAVAILABLE,
}


@dataclass
class IngestOutcome:
    source: str
    status: IngestStatus
    destination: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class IngestReport:
    kind: AssetKind
    outcomes: List[IngestOutcome] = field(default_factory=list)

    def add(self, outcome: IngestOutcome):
        self.outcomes.append(outcome)

    @property
    def imported(self) -> List[IngestOutcome]:
        return [o for o in self.outcomes if o.status in STORED_STATUSES]

    @property
    def skipped(self) -> List[IngestOutcome]:
        return [o for o in self.outcomes if o.status is IngestStatus.SKIPPED_DUPLICATE]

    @property
    def failed(self) -> List[IngestOutcome]:
        return [o for o in self.outcomes if o.status in FAILED_STATUSES]
