import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from PIL import Image

from . import config
from .catalog import Catalog, Subscriber
from .exceptions import ScanFailed
from .ingestion.pipeline import IngestionPipeline, SourceLike
from .models import AssetKind, AssetRecord, CollisionPolicy, IngestReport
from .scanning.scanner import CatalogScanner
from .storage.access import TransferablePayload
from .storage.store import AssetStore
from .thumbnails.cache import ThumbnailCache
from .thumbnails.generators import Generator


class MediaLibrary:
    """
    Presentation-facing entry point.

    Owns one store, one catalog and one thumbnail cache. Async methods must
    run on the event loop that owns the catalog; blocking work is pushed to
    worker threads internally.
    """

    def __init__(self,
                 root: Path,
                 bundle_dirs: Optional[Sequence[Path]] = None,
                 collision: CollisionPolicy = CollisionPolicy.SKIP,
                 thumbnail_timeout: Optional[float] = config.THUMBNAIL_TIMEOUT_SEC,
                 generators: Optional[Dict[AssetKind, Generator]] = None):
        # LibraryRootUnavailable propagates: without a root there is nothing to run.
        self.store = AssetStore(root)
        self.catalog = Catalog()
        self.thumbnails = ThumbnailCache(generators=generators, timeout=thumbnail_timeout)
        self.scanner = CatalogScanner(self.store, bundle_dirs)
        self.pipeline = IngestionPipeline(self.store, self.thumbnails, collision)
        self._background: Set[asyncio.Task] = set()

    @property
    def root(self) -> Path:
        return self.store.root

    # --- Reads ---

    def list_assets(self, kind: AssetKind) -> List[AssetRecord]:
        """Current catalog for ``kind`` with whatever thumbnails are ready."""
        return [self._with_thumbnail(r) for r in self.catalog.records(kind)]

    def find(self, kind: AssetKind, filename: str) -> Optional[AssetRecord]:
        """The stored asset of ``kind`` named ``filename``, if it is in the catalog."""
        identity = self.store.identity_for(self.store.destination_path(kind, filename))
        record = self.catalog.find(kind, identity)
        return self._with_thumbnail(record) if record else None

    def search(self, kind: AssetKind, text: str) -> List[AssetRecord]:
        return [self._with_thumbnail(r) for r in self.catalog.search(kind, text)]

    async def thumbnail(self, record: AssetRecord) -> Optional[Image.Image]:
        return await self.thumbnails.thumbnail(record)

    def subscribe(self, callback: Subscriber):
        return self.catalog.subscribe(callback)

    # --- Scanning ---

    async def rescan(self, kind: Optional[AssetKind] = None, wait_thumbnails: bool = False):
        kinds = [kind] if kind else list(AssetKind)
        for k in kinds:
            await self._rescan_kind(k)
        if wait_thumbnails:
            await self.thumbnails.join()

    async def _rescan_kind(self, kind: AssetKind):
        self.catalog.begin_scan(kind)
        try:
            records = await self.scanner.scan(kind)
        except ScanFailed as e:
            logging.error(f"Failed to scan {kind.value} assets: {e}")
            self.catalog.reset(kind)
            return

        self.catalog.replace(kind, records)
        self.thumbnails.reconcile(kind, records)
        for record in records:
            self.thumbnails.request(record)

    # --- Ingestion ---

    async def ingest(self, kind: AssetKind, sources: Iterable[SourceLike], show_progress: bool = False) -> IngestReport:
        report = await self.pipeline.ingest(kind, sources, on_stored=self.catalog.append, show_progress=show_progress)
        await self._after_batch(kind, report)
        return report

    async def ingest_payloads(self, kind: AssetKind, payloads: Iterable[TransferablePayload]) -> IngestReport:
        report = await self.pipeline.ingest_payloads(kind, payloads, on_stored=self.catalog.append)
        await self._after_batch(kind, report)
        return report

    def ingest_in_background(self, kind: AssetKind, sources: Iterable[SourceLike]) -> asyncio.Task:
        """Fire-and-forget ingestion; observe the result through the catalog."""
        task = asyncio.create_task(self.ingest(kind, list(sources)), name=f"ingest:{kind.value}")
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    async def _after_batch(self, kind: AssetKind, report: IngestReport):
        logging.info(
            f"Import of {kind.value} finished: {len(report.imported)} stored, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        if kind not in self.pipeline.unavailable:
            await self._rescan_kind(kind)

    def _background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logging.error(f"Background import failed: {error!r}")

    # --- Deletion ---

    async def delete(self, record: AssetRecord) -> bool:
        """Removes a stored asset and rescans its kind. Bundled scenes are read-only."""
        if record.bundled:
            logging.warning(f"Refusing to delete bundled scene {record.display_name}")
            return False
        try:
            removed = await asyncio.to_thread(self.store.delete, record.kind, record.storage_path.name)
        except OSError as e:
            logging.error(f"Failed to delete {record.storage_path}: {e}")
            return False
        self.thumbnails.evict(record.identity)
        await self._rescan_kind(record.kind)
        return removed

    async def drain(self):
        """Waits for background imports and pending thumbnails."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.thumbnails.join()

    def _with_thumbnail(self, record: AssetRecord) -> AssetRecord:
        image = self.thumbnails.peek(record.identity)
        if image is None:
            return record
        return dataclasses.replace(record, thumbnail=image)
