import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .. import config
from ..exceptions import CopyFailed, LibraryRootUnavailable, ScanFailed, StorageUnavailable
from ..models import AssetKind, CollisionPolicy, IngestStatus, KindPolicy
from .hasher import ContentHasher


@dataclass
class StoreResult:
    path: Path
    status: IngestStatus


class AssetStore:
    """
    Filesystem-backed, kind-partitioned storage for ingested assets.

    Layout under ``root``::

        Photo/*.jpg|png
        Media/*.mp4|mov
        Audio/*.mp3|wav|m4a
        *.usdz

    Kind directories are created lazily. The store never overwrites an
    existing asset unless asked to with CollisionPolicy.REPLACE.
    """

    def __init__(self, root: Path, policies: Optional[Dict[AssetKind, KindPolicy]] = None):
        self.root = Path(root).expanduser()
        self.policies = policies or config.KIND_POLICIES
        self.hasher = ContentHasher()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LibraryRootUnavailable(f"Cannot create library root {self.root}: {e}") from e
        self.root = self.root.resolve()

    def directory(self, kind: AssetKind) -> Path:
        subdir = self.policies[kind].subdirectory
        return self.root / subdir if subdir else self.root

    def ensure_directory(self, kind: AssetKind) -> Path:
        directory = self.directory(kind)
        if directory.is_dir():
            return directory
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create {kind.value} directory {directory}: {e}") from e
        logging.info(f"Created {kind.value} directory: {directory}")
        return directory

    def destination_path(self, kind: AssetKind, filename: str) -> Path:
        # Only the final component counts; "../x.jpg" must not escape the store.
        name = Path(filename).name
        if not name or name in ('.', '..'):
            raise ValueError(f"Invalid asset filename: {filename!r}")
        return self.directory(kind) / name

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_candidate(self, kind: AssetKind, name: str) -> bool:
        """True if a stored file with this name is listed as an asset of ``kind``."""
        # Hidden files cover AppleDouble "._x" files and in-flight ".x.partial" copies.
        if name.startswith('.') or name.endswith(config.TEMP_SUFFIX):
            return False
        return self.policies[kind].accepts(name)

    def identity_for(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def copy_into(self,
                  kind: AssetKind,
                  source: Path,
                  filename: Optional[str] = None,
                  policy: CollisionPolicy = CollisionPolicy.SKIP) -> StoreResult:
        """Copies ``source`` into the kind's directory under ``filename`` (default: source name)."""
        return self._place(
            kind,
            filename or source.name,
            policy,
            incoming=source,
            writer=lambda tmp: shutil.copy2(str(source), str(tmp)),
        )

    def write_bytes(self,
                    kind: AssetKind,
                    data: bytes,
                    filename: str,
                    policy: CollisionPolicy = CollisionPolicy.SKIP) -> StoreResult:
        return self._place(kind, filename, policy, incoming=data, writer=lambda tmp: tmp.write_bytes(data))

    def delete(self, kind: AssetKind, filename: str) -> bool:
        """Removes a stored asset. Returns False if it was already gone."""
        path = self.destination_path(kind, filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logging.info(f"Deleted {path}")
        return True

    def list_files(self, kind: AssetKind) -> List[Path]:
        """Regular files directly inside the kind's directory (not recursive)."""
        directory = self.directory(kind)
        if not directory.exists():
            return []
        try:
            with os.scandir(directory) as it:
                return [Path(e.path) for e in it if e.is_file()]
        except OSError as e:
            raise ScanFailed(f"Cannot list {directory}: {e}") from e

    # --- Internal ---

    def _place(self,
               kind: AssetKind,
               filename: str,
               policy: CollisionPolicy,
               incoming: Union[Path, bytes],
               writer: Callable[[Path], object]) -> StoreResult:
        self.ensure_directory(kind)
        requested = dest = self.destination_path(kind, filename)
        status = IngestStatus.IMPORTED

        if self.exists(dest):
            if policy is CollisionPolicy.SKIP:
                self._warn_if_different(dest, incoming)
                logging.info(f"File already exists, skipping: {dest}")
                return StoreResult(dest, IngestStatus.SKIPPED_DUPLICATE)
            if policy is CollisionPolicy.RENAME:
                dest = self._free_name(dest)
                status = IngestStatus.RENAMED
            else:
                status = IngestStatus.REPLACED

        tmp = dest.with_name(f".{dest.name}{config.TEMP_SUFFIX}")
        try:
            writer(tmp)
            # Another writer may have landed the same name while we copied.
            if status is not IngestStatus.REPLACED and self.exists(dest):
                if policy is CollisionPolicy.SKIP:
                    tmp.unlink()
                    logging.info(f"File appeared during copy, skipping: {dest}")
                    return StoreResult(dest, IngestStatus.SKIPPED_DUPLICATE)
                if policy is CollisionPolicy.RENAME:
                    try:
                        dest = self._free_name(requested)
                    except CopyFailed:
                        tmp.unlink()
                        raise
                    status = IngestStatus.RENAMED
                    logging.info(f"Name taken during copy, storing as {dest.name}")
                else:
                    status = IngestStatus.REPLACED
            os.replace(tmp, dest)
        except OSError as e:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_err:
                logging.debug(f"Failed to remove temp file {tmp}: {cleanup_err}")
            raise CopyFailed(dest, e) from e

        logging.info(f"Stored {kind.value} asset ({status.value}): {dest}")
        return StoreResult(dest, status)

    def _free_name(self, dest: Path) -> Path:
        for n in range(1, config.MAX_RENAME_ATTEMPTS + 1):
            candidate = dest.with_name(config.RENAME_PATTERN.format(stem=dest.stem, n=n, ext=dest.suffix))
            if not self.exists(candidate):
                return candidate
        raise CopyFailed(dest, FileExistsError(f"No free name after {config.MAX_RENAME_ATTEMPTS} attempts"))

    def _warn_if_different(self, dest: Path, incoming: Union[Path, bytes]):
        try:
            same = self.hasher.same_content(dest, incoming)
        except OSError as e:
            logging.debug(f"Could not compare {dest} with incoming content: {e}")
            return
        if not same:
            logging.warning(f"Different content with the same name was discarded: {dest}")
