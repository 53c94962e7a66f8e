import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Union

from tqdm import tqdm

from ..exceptions import AccessDenied, CopyFailed, StorageUnavailable, UnsupportedFileType
from ..models import (
    AssetKind,
    AssetRecord,
    CollisionPolicy,
    IngestOutcome,
    IngestReport,
    IngestStatus,
    STORED_STATUSES,
)
from ..storage.access import LocalFileSource, ScopedSource, TransferablePayload, scoped_access
from ..storage.store import AssetStore, StoreResult
from ..thumbnails.cache import ThumbnailCache

SourceLike = Union[ScopedSource, Path, str]
OnStored = Callable[[AssetRecord], None]


class IngestionPipeline:
    """
    Copies external files (or picker payloads) into the store, one at a
    time. Each input succeeds or fails on its own; nothing aborts a batch
    except the kind's directory being unusable.
    """

    def __init__(self,
                 store: AssetStore,
                 thumbnails: ThumbnailCache,
                 collision: CollisionPolicy = CollisionPolicy.SKIP):
        self.store = store
        self.thumbnails = thumbnails
        self.collision = collision
        # Kinds whose directory could not be created; unusable for the session.
        self.unavailable: Set[AssetKind] = set()

    async def ingest(self,
                     kind: AssetKind,
                     sources: Iterable[SourceLike],
                     on_stored: Optional[OnStored] = None,
                     show_progress: bool = False) -> IngestReport:
        sources = [self._as_source(s) for s in sources]
        report = IngestReport(kind)
        if not await self._prepare(kind, [s.name for s in sources], report):
            return report

        logging.info(f"Importing {len(sources)} {kind.value} file(s) (collision={self.collision.value})...")
        for source in tqdm(sources, desc=f"Importing {kind.value}", disable=not show_progress):
            outcome = await self._ingest_source(kind, source)
            self._finish(kind, outcome, report, on_stored)
        return report

    async def ingest_payloads(self,
                              kind: AssetKind,
                              payloads: Iterable[TransferablePayload],
                              on_stored: Optional[OnStored] = None) -> IngestReport:
        payloads = list(payloads)
        report = IngestReport(kind)
        names = [self.payload_filename(kind, p) for p in payloads]
        if not await self._prepare(kind, names, report):
            return report

        for payload, name in zip(payloads, names):
            outcome = await self._ingest_payload(kind, payload, name)
            self._finish(kind, outcome, report, on_stored)
        return report

    def payload_filename(self, kind: AssetKind, payload: TransferablePayload) -> str:
        """The reported filename, or a generated one for nameless payloads."""
        if payload.filename:
            return Path(payload.filename).name
        token = str(uuid.uuid4()).upper()
        if kind is AssetKind.PHOTO:
            return f"photo_{token}.jpg"
        ext = sorted(self.store.policies[kind].extensions)[0]
        return f"{kind.value}_{token}{ext}"

    # --- Internal ---

    async def _prepare(self, kind: AssetKind, labels, report: IngestReport) -> bool:
        error = None
        if kind in self.unavailable:
            error = f"{kind.value} storage is unavailable for this session"
        else:
            try:
                await asyncio.to_thread(self.store.ensure_directory, kind)
            except StorageUnavailable as e:
                self.unavailable.add(kind)
                error = str(e)

        if error is None:
            return True

        logging.error(f"Cannot import {kind.value} assets: {error}")
        for label in labels:
            report.add(IngestOutcome(label, IngestStatus.STORAGE_UNAVAILABLE, error=error))
        return False

    async def _ingest_source(self, kind: AssetKind, source: ScopedSource) -> IngestOutcome:
        try:
            self._check_type(kind, source.name)
            with scoped_access(source) as path:
                result = await asyncio.to_thread(self.store.copy_into, kind, path, source.name, self.collision)
        except AccessDenied as e:
            logging.warning(f"{e}")
            return IngestOutcome(source.name, IngestStatus.ACCESS_DENIED, error=str(e))
        except Exception as e:
            return self._failure(kind, source.name, e)
        return IngestOutcome(source.name, result.status, destination=result.path)

    async def _ingest_payload(self, kind: AssetKind, payload: TransferablePayload, name: str) -> IngestOutcome:
        try:
            self._check_type(kind, name)
            result: StoreResult = await asyncio.to_thread(
                self.store.write_bytes, kind, payload.data, name, self.collision
            )
        except Exception as e:
            return self._failure(kind, name, e)
        return IngestOutcome(name, result.status, destination=result.path)

    def _failure(self, kind: AssetKind, label: str, error: Exception) -> IngestOutcome:
        if isinstance(error, UnsupportedFileType):
            logging.warning(f"{error}")
            return IngestOutcome(label, IngestStatus.UNSUPPORTED_TYPE, error=str(error))
        if isinstance(error, CopyFailed):
            logging.error(f"Import failed for {label}: {error}")
            return IngestOutcome(label, IngestStatus.COPY_FAILED, destination=error.path, error=str(error))
        if isinstance(error, StorageUnavailable):
            self.unavailable.add(kind)
            logging.error(f"Import failed for {label}: {error}")
            return IngestOutcome(label, IngestStatus.STORAGE_UNAVAILABLE, error=str(error))
        if isinstance(error, (OSError, ValueError)):
            logging.error(f"Import failed for {label}: {error}")
            return IngestOutcome(label, IngestStatus.COPY_FAILED, error=str(error))
        raise error

    def _finish(self, kind: AssetKind, outcome: IngestOutcome, report: IngestReport, on_stored: Optional[OnStored]):
        report.add(outcome)
        if outcome.status not in STORED_STATUSES:
            return

        policy = self.store.policies[kind]
        record = AssetRecord(
            identity=self.store.identity_for(outcome.destination),
            display_name=outcome.destination.stem,
            storage_path=outcome.destination,
            kind=kind,
            strategy=policy.thumbnail,
        )
        if outcome.status is IngestStatus.REPLACED:
            self.thumbnails.evict(record.identity)
        if on_stored:
            on_stored(record)
        # Best effort; the item is done whether or not this ever resolves.
        self.thumbnails.request(record)

    def _check_type(self, kind: AssetKind, name: str):
        policy = self.store.policies[kind]
        if policy.accepts_bundle(name):
            raise UnsupportedFileType(f"{name} is a bundled scene and cannot be imported")
        if not policy.accepts(name):
            allowed = ", ".join(sorted(policy.extensions))
            raise UnsupportedFileType(f"{name} is not a {kind.value} file ({allowed})")
        if not self.store.is_candidate(kind, name):
            raise UnsupportedFileType(f"{name} is a hidden or temporary file name and would never be listed")

    def _as_source(self, source: SourceLike) -> ScopedSource:
        if isinstance(source, (str, Path)):
            return LocalFileSource(Path(source))
        return source
