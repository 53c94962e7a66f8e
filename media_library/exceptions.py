"""
Custom exception hierarchy for the media library.

Everything below MediaLibraryError is handled close to where it is raised
and logged; only LibraryRootUnavailable is allowed to stop the process.
"""
from pathlib import Path
from typing import Optional


class MediaLibraryError(Exception):
    """Base exception for all media library errors."""
    pass


class AccessDenied(MediaLibraryError):
    """Raised when scoped access to an external source cannot be acquired."""
    pass


class CopyFailed(MediaLibraryError):
    """Raised when writing an asset into the store fails."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to copy into {path}: {cause}")


class StorageUnavailable(MediaLibraryError):
    """Raised when a kind's storage directory cannot be created."""
    pass


class LibraryRootUnavailable(StorageUnavailable):
    """Raised when the library root itself cannot be created. Fatal."""
    pass


class UnsupportedFileType(MediaLibraryError):
    """Raised when a source's extension is outside the kind's allow-list."""
    pass


class ThumbnailFailed(MediaLibraryError):
    """Raised by thumbnail generators; callers see an absent thumbnail."""
    pass


class ScanFailed(MediaLibraryError):
    """Raised when a kind's directory cannot be listed."""
    pass
