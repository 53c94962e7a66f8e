from pathlib import Path

import pytest

from media_library.catalog import Catalog
from media_library.exceptions import AccessDenied
from media_library.ingestion.pipeline import IngestionPipeline
from media_library.models import AssetKind, CollisionPolicy, IngestStatus
from media_library.storage.access import LocalFileSource, TransferablePayload, scoped_access
from media_library.thumbnails.cache import ThumbnailCache


class TrackingSource:
    """A scoped handle that records how often access was taken and given back."""

    def __init__(self, path, grant=True):
        self.path = Path(path)
        self.name = self.path.name
        self.grant = grant
        self.started = 0
        self.stopped = 0

    def start_access(self):
        self.started += 1
        return self.grant

    def stop_access(self):
        self.stopped += 1


@pytest.fixture
def pipeline(store, fake_generators):
    return IngestionPipeline(store, ThumbnailCache(generators=fake_generators))


def test_scoped_access_releases_on_error(tmp_path):
    src = TrackingSource(tmp_path / "a.mov")
    with pytest.raises(KeyError):
        with scoped_access(src):
            raise KeyError("boom")
    assert (src.started, src.stopped) == (1, 1)


def test_scoped_access_denied(tmp_path):
    src = TrackingSource(tmp_path / "a.mov", grant=False)
    with pytest.raises(AccessDenied):
        with scoped_access(src):
            pass
    assert src.stopped == 0


def test_local_file_source(tmp_path):
    missing = LocalFileSource(tmp_path / "missing.jpg")
    assert not missing.start_access()

    present = tmp_path / "here.jpg"
    present.write_bytes(b"x")
    src = LocalFileSource(present)
    assert src.start_access()
    src.stop_access()
    assert not src.active


@pytest.mark.asyncio
async def test_partial_failure_isolation(pipeline, make_file):
    first = TrackingSource(make_file("one.mp4", b"1"))
    denied = TrackingSource(make_file("two.mp4", b"2"), grant=False)
    third = TrackingSource(make_file("three.mov", b"3"))

    report = await pipeline.ingest(AssetKind.VIDEO, [first, denied, third])

    assert [o.status for o in report.outcomes] == [
        IngestStatus.IMPORTED,
        IngestStatus.ACCESS_DENIED,
        IngestStatus.IMPORTED,
    ]
    assert [o.source for o in report.failed] == ["two.mp4"]
    # Acquired sources are released; the denied one was never acquired
    assert (first.started, first.stopped) == (1, 1)
    assert (third.started, third.stopped) == (1, 1)
    await pipeline.thumbnails.join()


@pytest.mark.asyncio
async def test_release_after_duplicate_skip(pipeline, make_file):
    await pipeline.ingest(AssetKind.AUDIO, [make_file("song.mp3", b"a")])
    again = TrackingSource(make_file("song.mp3", b"b", folder="elsewhere"))

    report = await pipeline.ingest(AssetKind.AUDIO, [again])

    assert report.outcomes[0].status is IngestStatus.SKIPPED_DUPLICATE
    assert (again.started, again.stopped) == (1, 1)


@pytest.mark.asyncio
async def test_copy_failure_is_per_item(pipeline, make_file, monkeypatch):
    import media_library.storage.store as store_module

    real_copy = store_module.shutil.copy2

    def flaky_copy(src, dst):
        if "bad" in str(src):
            raise OSError("I/O error")
        return real_copy(src, dst)

    monkeypatch.setattr(store_module.shutil, "copy2", flaky_copy)

    bad = TrackingSource(make_file("bad.wav"))
    report = await pipeline.ingest(AssetKind.AUDIO, [bad, make_file("good.wav")])

    assert [o.status for o in report.outcomes] == [IngestStatus.COPY_FAILED, IngestStatus.IMPORTED]
    assert "I/O error" in report.outcomes[0].error
    # Released even though the copy raised
    assert (bad.started, bad.stopped) == (1, 1)
    await pipeline.thumbnails.join()


@pytest.mark.asyncio
async def test_hidden_names_rejected_before_access(pipeline, make_file, store):
    hidden = TrackingSource(make_file(".intro.mp3"))
    apple_double = TrackingSource(make_file("._intro.mp3"))

    report = await pipeline.ingest(AssetKind.AUDIO, [hidden, apple_double])

    assert [o.status for o in report.outcomes] == [IngestStatus.UNSUPPORTED_TYPE] * 2
    assert (hidden.started, apple_double.started) == (0, 0)
    assert not store.destination_path(AssetKind.AUDIO, ".intro.mp3").exists()

    payloads = await pipeline.ingest_payloads(AssetKind.AUDIO, [TransferablePayload(b"x", filename=".intro.mp3")])
    assert payloads.outcomes[0].status is IngestStatus.UNSUPPORTED_TYPE
    assert store.list_files(AssetKind.AUDIO) == []


@pytest.mark.asyncio
async def test_unsupported_and_bundle_types_rejected(pipeline, make_file, store):
    report = await pipeline.ingest(AssetKind.MODEL, [
        make_file("scene.usda"),
        make_file("notes.txt"),
        make_file("robot.USDZ"),
    ])

    assert [o.status for o in report.outcomes] == [
        IngestStatus.UNSUPPORTED_TYPE,
        IngestStatus.UNSUPPORTED_TYPE,
        IngestStatus.IMPORTED,
    ]
    assert "bundled scene" in report.outcomes[0].error
    assert not store.destination_path(AssetKind.MODEL, "scene.usda").exists()


@pytest.mark.asyncio
async def test_plain_paths_accepted(pipeline, make_image):
    report = await pipeline.ingest(AssetKind.PHOTO, [str(make_image("a.jpg")), make_image("b.png")])
    assert len(report.imported) == 2
    await pipeline.thumbnails.join()


@pytest.mark.asyncio
async def test_storage_unavailable_for_session(pipeline, make_file, library_root):
    (library_root / "Media").write_text("squatter")

    report = await pipeline.ingest(AssetKind.VIDEO, [make_file("a.mp4"), make_file("b.mp4")])
    assert [o.status for o in report.outcomes] == [IngestStatus.STORAGE_UNAVAILABLE] * 2
    assert AssetKind.VIDEO in pipeline.unavailable

    # Stays unusable even once the obstacle is gone
    (library_root / "Media").unlink()
    report = await pipeline.ingest(AssetKind.VIDEO, [make_file("c.mp4")])
    assert report.outcomes[0].status is IngestStatus.STORAGE_UNAVAILABLE

    # Other kinds are unaffected
    report = await pipeline.ingest(AssetKind.AUDIO, [make_file("d.mp3")])
    assert report.outcomes[0].status is IngestStatus.IMPORTED


@pytest.mark.asyncio
async def test_payloads_named_and_stored(pipeline, store):
    payloads = [
        TransferablePayload(b"\xff\xd8one"),
        TransferablePayload(b"\xff\xd8two", filename="IMG_0001.jpg"),
    ]
    report = await pipeline.ingest_payloads(AssetKind.PHOTO, payloads)

    names = [o.destination.name for o in report.outcomes]
    assert names[0].startswith("photo_") and names[0].endswith(".jpg")
    assert names[1] == "IMG_0001.jpg"
    assert store.destination_path(AssetKind.PHOTO, "IMG_0001.jpg").read_bytes() == b"\xff\xd8two"
    await pipeline.thumbnails.join()


@pytest.mark.asyncio
async def test_payload_with_wrong_type(pipeline):
    report = await pipeline.ingest_payloads(AssetKind.VIDEO, [TransferablePayload(b"x", filename="clip.avi")])
    assert report.outcomes[0].status is IngestStatus.UNSUPPORTED_TYPE


def test_generated_payload_names(pipeline):
    assert pipeline.payload_filename(AssetKind.VIDEO, TransferablePayload(b"")).endswith(".mov")
    assert pipeline.payload_filename(AssetKind.AUDIO, TransferablePayload(b"")).startswith("audio_")
    assert pipeline.payload_filename(AssetKind.PHOTO, TransferablePayload(b"", "dir/x.png")) == "x.png"


@pytest.mark.asyncio
async def test_stored_records_reported_to_callback(pipeline, make_file):
    catalog = Catalog()
    await pipeline.ingest(AssetKind.AUDIO, [make_file("a.mp3"), make_file("a.mp3", folder="dup")], on_stored=catalog.append)
    records = catalog.records(AssetKind.AUDIO)
    assert [r.identity for r in records] == ["Audio/a.mp3"]


@pytest.mark.asyncio
async def test_rename_policy(store, make_file):
    pipeline = IngestionPipeline(store, ThumbnailCache(), CollisionPolicy.RENAME)
    report = await pipeline.ingest(AssetKind.AUDIO, [make_file("a.mp3", b"1"), make_file("a.mp3", b"2", folder="x")])
    assert [o.status for o in report.outcomes] == [IngestStatus.IMPORTED, IngestStatus.RENAMED]
    assert report.outcomes[1].destination.name == "a (1).mp3"
