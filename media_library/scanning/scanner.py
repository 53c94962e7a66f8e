import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..models import AssetKind, AssetRecord, KindPolicy
from ..storage.store import AssetStore

BUNDLE_PREFIX = "bundle:"


class CatalogScanner:
    """
    Rebuilds the records for a kind from what is on disk right now.

    Full listing every time, no diff against the previous catalog:
    personal libraries are small.
    """

    def __init__(self, store: AssetStore, bundle_dirs: Optional[Sequence[Path]] = None):
        self.store = store
        self.bundle_dirs = [Path(d) for d in (bundle_dirs or [])]

    async def scan(self, kind: AssetKind) -> List[AssetRecord]:
        return await asyncio.to_thread(self.scan_sync, kind)

    def scan_sync(self, kind: AssetKind) -> List[AssetRecord]:
        """Raises ScanFailed if the kind's directory cannot be listed."""
        policy = self.store.policies[kind]
        candidates = [p for p in self.store.list_files(kind) if self.store.is_candidate(kind, p.name)]

        records = []
        for path in self._sorted(candidates):
            record = self._make_record(path, policy, self.store.identity_for(path))
            if record:
                records.append(record)

        if policy.bundle_extensions:
            records.extend(self._scan_bundles(policy))

        logging.debug(f"Scanned {kind.value}: {len(records)} assets")
        return records

    def _scan_bundles(self, policy: KindPolicy) -> List[AssetRecord]:
        records = []
        seen = set()
        for directory in self.bundle_dirs:
            try:
                with os.scandir(directory) as it:
                    paths = [Path(e.path) for e in it if e.is_file()]
            except FileNotFoundError:
                logging.debug(f"Bundle directory missing: {directory}")
                continue
            except OSError as e:
                logging.warning(f"Cannot list bundle directory {directory}: {e}")
                continue

            for path in self._sorted(paths):
                if path.name.startswith('.') or not (policy.accepts_bundle(path.name) or policy.accepts(path.name)):
                    continue
                if path.name in seen:
                    continue
                record = self._make_record(path, policy, f"{BUNDLE_PREFIX}{path.name}", bundled=True)
                if record:
                    seen.add(path.name)
                    records.append(record)
        return records

    def _sorted(self, paths: Iterable[Path]) -> List[Path]:
        return sorted(paths, key=lambda p: p.name.lower())

    def _make_record(self, path: Path, policy: KindPolicy, identity: str, bundled: bool = False) -> Optional[AssetRecord]:
        try:
            st = path.stat()
        except OSError as e:
            # Removed between listing and stat.
            logging.debug(f"Skipping vanished file {path}: {e}")
            return None

        return AssetRecord(
            identity=identity,
            display_name=path.stem,
            storage_path=path,
            kind=policy.kind,
            strategy=policy.thumbnail,
            bundled=bundled,
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime),
        )
