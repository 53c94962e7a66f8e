"""
Configuration constants for the media library.
"""
from .models import AssetKind, KindPolicy, ThumbnailStrategy

# --- Kind Policy Table ---
# One entry per asset kind. Models historically live at the store root.
KIND_POLICIES = {
    AssetKind.PHOTO: KindPolicy(
        kind=AssetKind.PHOTO,
        subdirectory="Photo",
        extensions=frozenset({'.jpg', '.png'}),
        thumbnail=ThumbnailStrategy.BITMAP,
    ),
    AssetKind.VIDEO: KindPolicy(
        kind=AssetKind.VIDEO,
        subdirectory="Media",
        extensions=frozenset({'.mp4', '.mov'}),
        thumbnail=ThumbnailStrategy.BITMAP,
    ),
    AssetKind.AUDIO: KindPolicy(
        kind=AssetKind.AUDIO,
        subdirectory="Audio",
        extensions=frozenset({'.mp3', '.wav', '.m4a'}),
        thumbnail=ThumbnailStrategy.NONE,
    ),
    AssetKind.MODEL: KindPolicy(
        kind=AssetKind.MODEL,
        subdirectory=None,
        extensions=frozenset({'.usdz'}),
        thumbnail=ThumbnailStrategy.RENDER,
        bundle_extensions=frozenset({'.usda', '.usdc'}),
    ),
}

# --- Thumbnails ---
THUMBNAIL_SIZE = (100, 100)  # logical points
THUMBNAIL_SCALE = 2.0
THUMBNAIL_PIXELS = (int(THUMBNAIL_SIZE[0] * THUMBNAIL_SCALE), int(THUMBNAIL_SIZE[1] * THUMBNAIL_SCALE))
THUMBNAIL_TIMEOUT_SEC = 30.0

# Embedded EXIF previews smaller than this (longest edge) are ignored
# in favour of decoding the full image.
EMBEDDED_THUMBNAIL_MIN_EDGE = 100

FFMPEG_BIN = "ffmpeg"
VIDEO_FRAME_OFFSET_SEC = 1.0
FFMPEG_TIMEOUT_SEC = 20.0

# --- Hashing ---
# Files smaller than this are hashed fully. Larger ones get a Sparse Hash.
SPARSE_HASH_THRESHOLD = 5 * 1024 * 1024  # 5 MB
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Storage ---
# Copies land in "<name><suffix>" first and are renamed into place.
TEMP_SUFFIX = ".partial"
RENAME_PATTERN = "{stem} ({n}){ext}"
MAX_RENAME_ATTEMPTS = 1000
LOG_FILE_NAME = "media_library.log"
ROOT_ENV_VAR = "MEDIA_LIBRARY_ROOT"
