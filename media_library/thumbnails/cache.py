import asyncio
import logging
from typing import Dict, Iterable, Optional, Set, Tuple

from PIL import Image

from .. import config
from ..exceptions import ThumbnailFailed
from ..models import AssetKind, AssetRecord, ThumbnailStrategy
from .generators import DEFAULT_GENERATORS, Generator


class ThumbnailCache:
    """
    In-memory previews keyed by asset identity.

    Bitmaps are computed once per identity, off the event loop. Concurrent
    requests for the same identity share one task. A failed or timed-out
    attempt is remembered as "no thumbnail" and not retried until
    ``reconcile`` runs for the asset's kind (i.e. the next full rescan).

    All methods must be called from the event loop thread.
    """

    def __init__(self,
                 generators: Optional[Dict[AssetKind, Generator]] = None,
                 size: Tuple[int, int] = config.THUMBNAIL_PIXELS,
                 timeout: Optional[float] = config.THUMBNAIL_TIMEOUT_SEC):
        self.generators = dict(DEFAULT_GENERATORS)
        if generators:
            self.generators.update(generators)
        self.size = size
        self.timeout = timeout

        self._images: Dict[str, Image.Image] = {}
        self._failed: Set[str] = set()
        self._pending: Dict[str, asyncio.Task] = {}
        self._kinds: Dict[str, AssetKind] = {}
        # Bumped on eviction so results of superseded tasks are dropped.
        self._versions: Dict[str, int] = {}

    def peek(self, identity: str) -> Optional[Image.Image]:
        return self._images.get(identity)

    def has_failed(self, identity: str) -> bool:
        return identity in self._failed

    def request(self, record: AssetRecord) -> Optional[asyncio.Task]:
        """
        Starts generation for ``record`` in the background if nothing is
        cached, pending or known to fail. Returns the in-flight task, if any.
        """
        if record.strategy is not ThumbnailStrategy.BITMAP:
            return None
        identity = record.identity
        if identity in self._images or identity in self._failed:
            return None
        pending = self._pending.get(identity)
        if pending is not None:
            return pending

        self._kinds[identity] = record.kind
        version = self._versions.get(identity, 0)
        task = asyncio.create_task(self._generate(record, version), name=f"thumbnail:{identity}")
        self._pending[identity] = task
        task.add_done_callback(lambda t, i=identity: self._forget(i, t))
        return task

    async def thumbnail(self, record: AssetRecord) -> Optional[Image.Image]:
        """The cached preview, generating it if needed. None when unsupported or failed."""
        if record.strategy is not ThumbnailStrategy.BITMAP:
            return None
        cached = self._images.get(record.identity)
        if cached is not None:
            return cached
        task = self.request(record)
        if task is None:
            return None
        return await asyncio.shield(task)

    def evict(self, identity: str):
        self._images.pop(identity, None)
        self._failed.discard(identity)
        self._pending.pop(identity, None)
        self._kinds.pop(identity, None)
        self._versions[identity] = self._versions.get(identity, 0) + 1

    def reconcile(self, kind: AssetKind, records: Iterable[AssetRecord]):
        """
        Aligns the cache with a fresh scan of ``kind``: drops entries for
        assets that are gone and forgets failures so they get another try.
        """
        present = {r.identity for r in records}
        for identity, owner in list(self._kinds.items()):
            if owner is not kind:
                continue
            if identity not in present:
                self.evict(identity)
            else:
                self._failed.discard(identity)

    async def join(self):
        """Waits for every in-flight generation (including ones started meanwhile)."""
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    # --- Internal ---

    async def _generate(self, record: AssetRecord, version: int) -> Optional[Image.Image]:
        identity = record.identity
        generator = self.generators.get(record.kind)
        image = None
        try:
            if generator is None:
                raise ThumbnailFailed(f"No thumbnail generator for {record.kind.value}")
            work = asyncio.to_thread(generator, record.storage_path, self.size)
            image = await asyncio.wait_for(work, self.timeout) if self.timeout else await work
        except asyncio.TimeoutError:
            logging.warning(f"Thumbnail timed out after {self.timeout}s: {record.storage_path}")
        except ThumbnailFailed as e:
            logging.warning(f"Failed to generate thumbnail: {e}")
        except Exception as e:
            logging.warning(f"Thumbnail generator crashed for {record.storage_path}: {e}")

        if self._versions.get(identity, 0) != version:
            # Evicted while we were working; the result describes an old file.
            return None
        if image is None:
            self._failed.add(identity)
        else:
            self._images[identity] = image
        return image

    def _forget(self, identity: str, task: asyncio.Task):
        if self._pending.get(identity) is task:
            del self._pending[identity]
