"""
External sources handed to the ingestion pipeline.

A source is anything with ``name``, ``start_access()``, ``stop_access()``
and ``path``. Sandboxed hosts supply their own handle; LocalFileSource
covers plain filesystem paths.
"""
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

from ..exceptions import AccessDenied


class ScopedSource(Protocol):
    name: str
    path: Path

    def start_access(self) -> bool: ...

    def stop_access(self) -> None: ...


class LocalFileSource:
    """A plain file. Access is granted when the file is a readable regular file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = self.path.name
        self.active = False

    def start_access(self) -> bool:
        self.active = self.path.is_file() and os.access(self.path, os.R_OK)
        return self.active

    def stop_access(self) -> None:
        self.active = False

    def __repr__(self):
        return f"LocalFileSource({str(self.path)!r})"


@dataclass
class TransferablePayload:
    """In-memory data from a library picker, with the filename it reported (if any)."""
    data: bytes
    filename: Optional[str] = None


@contextmanager
def scoped_access(source: ScopedSource) -> Iterator[Path]:
    """
    Acquire access to ``source`` for the duration of the block.

    Raises AccessDenied if the handle refuses. Once acquired, access is
    released on every exit path.
    """
    try:
        granted = source.start_access()
    except OSError as e:
        raise AccessDenied(f"Cannot access {source.name}: {e}") from e
    if not granted:
        raise AccessDenied(f"Cannot access {source.name}")

    try:
        yield source.path
    finally:
        try:
            source.stop_access()
        except OSError as e:
            logging.warning(f"Failed to release access to {source.name}: {e}")
