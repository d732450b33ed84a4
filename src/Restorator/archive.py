"""Read-only access to gzip-compressed tar backups produced by the exporter.

Entries are yielded in the order the tar stream stores them. Paths are
normalized to POSIX form without a leading ``./`` so they can be compared
against the fixed export layout.
"""

from __future__ import annotations

import logging
import posixpath
import tarfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable

logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when a backup archive cannot be opened or read."""

    pass


def normalize_entry_path(name: str) -> str:
    """Return ``name`` as a clean relative POSIX path."""
    path = posixpath.normpath(name.replace("\\", "/"))
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


@dataclass(frozen=True)
class ArchiveEntry:
    """One file inside the archive; content is read on demand."""

    path: str
    size: int
    _opener: Callable[[], IO[bytes] | None] = field(repr=False, compare=False)

    def read(self) -> bytes:
        stream = self._opener()
        if stream is None:
            raise ArchiveError(f"Archive entry '{self.path}' has no readable content")
        with stream:
            return stream.read()

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.read().decode(encoding)


class TarGzReader:
    """Context manager wrapping a ``tarfile`` opened for reading."""

    def __init__(self, archive_path: str | Path):
        self.archive_path = Path(archive_path)
        self._tar: tarfile.TarFile | None = None

    def __enter__(self) -> TarGzReader:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        if self._tar is not None:
            return
        try:
            self._tar = tarfile.open(self.archive_path, mode="r:*")
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveError(f"Unable to open archive '{self.archive_path}': {exc}") from exc
        logger.debug("Opened archive %s", self.archive_path)

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None

    @property
    def tar(self) -> tarfile.TarFile:
        if self._tar is None:
            raise ArchiveError(f"Archive '{self.archive_path}' is not open")
        return self._tar

    def _entry(self, member: tarfile.TarInfo) -> ArchiveEntry:
        tar = self.tar
        return ArchiveEntry(
            path=normalize_entry_path(member.name),
            size=member.size,
            _opener=lambda: tar.extractfile(member),
        )

    def all_entries(self) -> Iterator[ArchiveEntry]:
        """Yield every regular file entry in archive order."""
        try:
            for member in self.tar:
                if member.isfile():
                    yield self._entry(member)
        except tarfile.TarError as exc:
            raise ArchiveError(f"Failed reading archive '{self.archive_path}': {exc}") from exc

    def find_entry(self, path: str) -> ArchiveEntry | None:
        wanted = normalize_entry_path(path)
        for entry in self.all_entries():
            if entry.path == wanted:
                return entry
        return None

    def read_entry_content(self, path: str) -> str:
        entry = self.find_entry(path)
        if entry is None:
            raise ArchiveError(f"Archive '{self.archive_path}' has no entry '{path}'")
        return entry.read_text()


def tarball_reader(archive_path: str | Path) -> TarGzReader:
    """Return an opened reader; use it as a context manager."""
    reader = TarGzReader(archive_path)
    reader.open()
    return reader
