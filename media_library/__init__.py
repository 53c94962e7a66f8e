from .core import MediaLibrary
from .models import AssetKind, AssetRecord, CollisionPolicy, IngestReport, IngestStatus
from .storage.access import LocalFileSource, TransferablePayload

__all__ = [
    "AssetKind",
    "AssetRecord",
    "CollisionPolicy",
    "IngestReport",
    "IngestStatus",
    "LocalFileSource",
    "MediaLibrary",
    "TransferablePayload",
]
