import pytest
from PIL import Image

from media_library.core import MediaLibrary
from media_library.models import AssetKind
from media_library.storage.store import AssetStore


def fake_video_frame(path, size):
    """Stands in for ffmpeg: a solid frame bounded by ``size``."""
    return Image.new("RGB", size, (10, 20, 30))


@pytest.fixture
def library_root(tmp_path):
    return tmp_path / "Documents"


@pytest.fixture
def store(library_root):
    return AssetStore(library_root)


@pytest.fixture
def fake_generators():
    return {AssetKind.VIDEO: fake_video_frame}


@pytest.fixture
def library(library_root, fake_generators):
    """A MediaLibrary whose video thumbnails do not need ffmpeg."""
    return MediaLibrary(library_root, generators=fake_generators)


@pytest.fixture
def make_image(tmp_path):
    """Writes a real image file outside the library and returns its path."""
    def _make(name, size=(640, 480), color=(200, 50, 50), folder="incoming"):
        directory = tmp_path / folder
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        fmt = "PNG" if path.suffix.lower() == ".png" else "JPEG"
        Image.new("RGB", size, color).save(path, fmt)
        return path
    return _make


@pytest.fixture
def make_file(tmp_path):
    """Writes arbitrary bytes outside the library and returns the path."""
    def _make(name, data=b"data", folder="incoming"):
        directory = tmp_path / folder
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(data)
        return path
    return _make
