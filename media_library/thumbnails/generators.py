"""
Blocking thumbnail generators, one per bitmap-previewed kind.

Each takes the stored path and a pixel bound and returns an RGB
PIL image that fits inside the bound, or raises ThumbnailFailed.
The cache runs them off the event loop.
"""
import io
import logging
import subprocess
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import exifread
from PIL import Image, ImageOps

from .. import config
from ..exceptions import ThumbnailFailed
from ..models import AssetKind

Generator = Callable[[Path, Tuple[int, int]], Image.Image]

# EXIF orientation -> transpose needed to display upright
_ORIENTATION_TRANSPOSE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def _fit(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    img.thumbnail(size)
    return img.convert("RGB")


def photo_thumbnail(path: Path, size: Tuple[int, int] = config.THUMBNAIL_PIXELS) -> Image.Image:
    """
    Strategies:
      - JPEG with a usable embedded EXIF preview: use it (no full decode).
      - Otherwise: decode with Pillow, honour EXIF orientation, downscale.
    """
    if path.suffix.lower() in ('.jpg', '.jpeg'):
        embedded = _embedded_exif_thumbnail(path, size)
        if embedded is not None:
            return embedded

    try:
        with Image.open(path) as im:
            upright = ImageOps.exif_transpose(im)
            return _fit(upright, size)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ThumbnailFailed(f"Cannot decode image {path}: {e}") from e


def _embedded_exif_thumbnail(path: Path, size: Tuple[int, int]) -> Optional[Image.Image]:
    try:
        with path.open('rb') as f:
            tags = exifread.process_file(f)
    except Exception as e:
        logging.debug(f"ExifRead failed for {path}: {e}")
        return None

    data = tags.get('JPEGThumbnail')
    if not data:
        return None

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError) as e:
        logging.debug(f"Embedded thumbnail unreadable for {path}: {e}")
        return None

    if max(img.size) < config.EMBEDDED_THUMBNAIL_MIN_EDGE:
        return None

    orientation = tags.get('Image Orientation')
    if orientation is not None and orientation.values:
        method = _ORIENTATION_TRANSPOSE.get(orientation.values[0])
        if method is not None:
            img = img.transpose(method)

    return _fit(img, size)


def video_thumbnail(path: Path,
                    size: Tuple[int, int] = config.THUMBNAIL_PIXELS,
                    ffmpeg: str = config.FFMPEG_BIN) -> Image.Image:
    """
    Grabs one frame with ffmpeg (PNG on stdout).
    Tries VIDEO_FRAME_OFFSET_SEC first, then the very first frame for clips
    shorter than the offset.
    """
    last_error = "no frame decoded"
    for seek in (config.VIDEO_FRAME_OFFSET_SEC, 0.0):
        cmd = [
            ffmpeg, "-v", "error",
            "-ss", f"{seek:.3f}",
            "-i", str(path),
            "-frames:v", "1",
            "-f", "image2pipe", "-vcodec", "png",
            "-",
        ]
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=config.FFMPEG_TIMEOUT_SEC, check=False)
        except FileNotFoundError as e:
            raise ThumbnailFailed(f"{ffmpeg} not found") from e
        except subprocess.TimeoutExpired as e:
            raise ThumbnailFailed(f"{ffmpeg} timed out on {path}") from e

        if proc.returncode != 0 or not proc.stdout:
            last_error = proc.stderr.decode('utf-8', errors='replace').strip() or last_error
            continue

        try:
            with Image.open(io.BytesIO(proc.stdout)) as frame:
                return _fit(frame, size)
        except (OSError, ValueError) as e:
            last_error = str(e)

    raise ThumbnailFailed(f"Cannot grab frame from {path}: {last_error}")


DEFAULT_GENERATORS: Dict[AssetKind, Generator] = {
    AssetKind.PHOTO: photo_thumbnail,
    AssetKind.VIDEO: video_thumbnail,
}
