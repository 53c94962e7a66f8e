import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .. import config


@dataclass
class HashResult:
    value: str
    is_sparse: bool  # True if we only read part of the file


class ContentHasher:
    def fingerprint(self, path: Path, allow_sparse: bool = True) -> HashResult:
        """
        Computes a fingerprint for the file.

        Strategy:
        1. If file < SPARSE_HASH_THRESHOLD (or sparse not allowed):
           -> Full Read (SHA-256).
        2. Otherwise:
           -> Sparse Hash (Header + Middle + Footer + Size).
        """
        file_size = path.stat().st_size
        if not allow_sparse or file_size < config.SPARSE_HASH_THRESHOLD:
            return HashResult(self._full_sha256(path), is_sparse=False)
        return HashResult(self._sparse_hash(path, file_size), is_sparse=True)

    def fingerprint_bytes(self, data: bytes) -> HashResult:
        return HashResult(hashlib.sha256(data).hexdigest(), is_sparse=False)

    def same_content(self, stored: Path, incoming: Union[Path, bytes]) -> bool:
        """
        True if ``incoming`` holds the same bytes as the stored file.

        Sizes are compared first. Large files are compared by sparse hash;
        a sparse match is confirmed with a full read before trusting it.
        """
        stored_size = stored.stat().st_size

        if isinstance(incoming, (bytes, bytearray)):
            if len(incoming) != stored_size:
                return False
            return self._full_sha256(stored) == self.fingerprint_bytes(bytes(incoming)).value

        if incoming.stat().st_size != stored_size:
            return False

        a = self.fingerprint(stored)
        b = self.fingerprint(incoming)
        if a.value != b.value:
            return False
        if not a.is_sparse:
            return True

        # Sparse collision: read everything to be sure.
        return self._full_sha256(stored) == self._full_sha256(incoming)

    def _full_sha256(self, path: Path) -> str:
        """Reads entire file. High I/O cost."""
        h = hashlib.sha256()
        with open(path, 'rb') as f:
            while chunk := f.read(config.HASH_CHUNK_SIZE):
                h.update(chunk)
        return h.hexdigest()

    def _sparse_hash(self, path: Path, file_size: int) -> str:
        """
        Reads Header (4KB), Middle (4KB), Footer (4KB) and mixes in file size.
        Prefixes with 's-' to distinguish from full hashes.
        """
        chunk_size = 4096
        h = hashlib.sha256()
        h.update(str(file_size).encode('ascii'))

        with open(path, 'rb') as f:
            h.update(f.read(chunk_size))

            if file_size > chunk_size * 3:
                f.seek(file_size // 2)
                h.update(f.read(chunk_size))

            if file_size > chunk_size * 2:
                try:
                    f.seek(-chunk_size, 2)
                    h.update(f.read(chunk_size))
                except OSError:
                    pass

        return f"s-{h.hexdigest()}"
