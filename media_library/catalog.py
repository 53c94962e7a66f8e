"""
In-memory projection of the asset store.

The catalog is never the source of truth: it is rebuilt from disk by
rescans and lost when the process exits. Mutations are confined to one
coordination thread (the event loop thread in practice); the thread is
fixed by the first mutation.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import AssetKind, AssetRecord

Subscriber = Callable[[AssetKind, Tuple[AssetRecord, ...]], None]


class CatalogState(str, Enum):
    EMPTY = "empty"
    SCANNING = "scanning"
    POPULATED = "populated"


class Catalog:
    def __init__(self, kinds: Iterable[AssetKind] = AssetKind):
        self._records: Dict[AssetKind, Tuple[AssetRecord, ...]] = {k: () for k in kinds}
        self._states: Dict[AssetKind, CatalogState] = {k: CatalogState.EMPTY for k in self._records}
        self._subscribers: List[Subscriber] = []
        self._owner: Optional[int] = None

    # --- Reads (any thread) ---

    def records(self, kind: AssetKind) -> Tuple[AssetRecord, ...]:
        return self._records[kind]

    def state(self, kind: AssetKind) -> CatalogState:
        return self._states[kind]

    def find(self, kind: AssetKind, identity: str) -> Optional[AssetRecord]:
        for record in self._records[kind]:
            if record.identity == identity:
                return record
        return None

    def search(self, kind: AssetKind, text: str) -> List[AssetRecord]:
        """Case-insensitive substring match on display name. Empty text matches everything."""
        needle = text.strip().casefold()
        if not needle:
            return list(self._records[kind])
        return [r for r in self._records[kind] if needle in r.display_name.casefold()]

    # --- Mutations (coordination thread only) ---

    def begin_scan(self, kind: AssetKind):
        self._check_context()
        # Previous records stay visible until the swap.
        self._states[kind] = CatalogState.SCANNING

    def replace(self, kind: AssetKind, records: Iterable[AssetRecord]):
        self._check_context()
        unique: List[AssetRecord] = []
        seen = set()
        for record in records:
            if record.storage_path in seen:
                logging.warning(f"Duplicate catalog entry dropped: {record.storage_path}")
                continue
            seen.add(record.storage_path)
            unique.append(record)

        self._records[kind] = tuple(unique)
        self._states[kind] = CatalogState.POPULATED
        self._notify(kind)

    def reset(self, kind: AssetKind):
        self._check_context()
        self._records[kind] = ()
        self._states[kind] = CatalogState.EMPTY
        self._notify(kind)

    def append(self, record: AssetRecord):
        """Adds a freshly ingested record ahead of the next rescan. No-op if its path is already listed."""
        self._check_context()
        current = self._records[record.kind]
        if any(r.storage_path == record.storage_path for r in current):
            return
        self._records[record.kind] = current + (record,)
        if self._states[record.kind] is CatalogState.EMPTY:
            self._states[record.kind] = CatalogState.POPULATED
        self._notify(record.kind)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, kind: AssetKind):
        records = self._records[kind]
        for callback in list(self._subscribers):
            try:
                callback(kind, records)
            except Exception:
                logging.exception(f"Catalog subscriber failed for {kind.value}")

    def _check_context(self):
        current = threading.get_ident()
        if self._owner is None:
            self._owner = current
        elif self._owner != current:
            raise RuntimeError("Catalog mutated outside its coordination thread")
