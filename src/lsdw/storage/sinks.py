"""Byte sinks that writers append encoded chunks to.

A sink is an append-only byte destination owned by exactly one writer. The
coordinator receives a sink factory instead of opening files itself, so the
same code runs against the filesystem or an in-memory buffer.
"""

from __future__ import annotations

import errno
import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol, runtime_checkable

from lsdw.errors import DirectoryNotWritableError, DiskFullError, SinkCloseError, SinkWriteError

logger = logging.getLogger(__name__)

# Write buffer for file sinks
DEFAULT_BUFFER_SIZE = 64 * 1024


@runtime_checkable
class ByteSink(Protocol):
    """Minimal contract for an append-only byte destination."""

    @property
    def name(self) -> str:
        """Human readable identifier used in error messages."""

    @property
    def closed(self) -> bool:
        """Whether close() has completed."""

    def write(self, data: bytes) -> None:
        """Append bytes. Raises an IoError subclass on failure."""

    def flush(self) -> None:
        """Push buffered bytes to the underlying storage."""

    def close(self) -> None:
        """Flush and release the destination. Safe to call twice."""


SinkFactory = Callable[[str], ByteSink]


class FileSink:
    """Append-only file sink.

    The file is created (truncating any previous content) when the sink is
    constructed. OSErrors are translated into the writer's IO error types.

    Args:
        path: Output file path. Parent directories are created.
        buffer_size: Write buffer size in bytes.
        fsync: Whether close() forces the data to disk.
    """

    def __init__(self, path: Path | str, buffer_size: int = DEFAULT_BUFFER_SIZE, fsync: bool = True) -> None:
        self._path = Path(path)
        self._fsync = fsync
        self._bytes_written = 0
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryNotWritableError(str(self._path.parent), str(e)) from e
        try:
            self._file: Optional[BinaryIO] = open(self._path, "wb", buffering=buffer_size)
        except OSError as e:
            raise SinkWriteError(str(self._path), str(e), 0) from e
        logger.debug("Opened %s", self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        return str(self._path)

    @property
    def closed(self) -> bool:
        return self._file is None

    def write(self, data: bytes) -> None:
        if self._file is None:
            raise SinkWriteError(self.name, "sink is closed", self._bytes_written)
        try:
            self._file.write(data)
        except OSError as e:
            raise self._translate(e) from e
        self._bytes_written += len(data)

    def flush(self) -> None:
        if self._file is None:
            return
        try:
            self._file.flush()
        except OSError as e:
            raise self._translate(e) from e

    def close(self) -> None:
        if self._file is None:
            return
        file, self._file = self._file, None
        error: Optional[OSError] = None
        try:
            file.flush()
            if self._fsync:
                os.fsync(file.fileno())
        except OSError as e:
            error = e
        try:
            file.close()
        except OSError as e:
            if error is None:
                error = e
            else:
                logger.warning("Closing %s after a failed flush also failed: %s", self._path, e)
        if error is not None:
            if error.errno == errno.ENOSPC:
                raise DiskFullError(self.name, self._bytes_written) from error
            raise SinkCloseError(self.name, str(error)) from error
        logger.debug("Closed %s (%d bytes)", self._path, self._bytes_written)

    def _translate(self, error: OSError) -> Exception:
        if error.errno == errno.ENOSPC:
            return DiskFullError(self.name, self._bytes_written)
        return SinkWriteError(self.name, str(error), self._bytes_written)


class MemorySink:
    """In-memory sink backed by a BytesIO buffer.

    The content stays readable through getvalue() after close().
    """

    def __init__(self, name: str = "<memory>") -> None:
        self._name = name
        self._buffer = io.BytesIO()
        self._closed = False
        self.writes = 0
        self.flushes = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        if self._closed:
            raise SinkWriteError(self._name, "sink is closed", len(self._buffer.getbuffer()))
        self._buffer.write(data)
        self.writes += 1

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self._closed = True

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


class DirectorySinkFactory:
    """Opens a FileSink per filename under a destination root."""

    def __init__(self, root: Path | str, fsync: bool = True) -> None:
        self._root = Path(root)
        self._fsync = fsync

    @property
    def root(self) -> Path:
        return self._root

    def __call__(self, filename: str) -> FileSink:
        return FileSink(self._root / filename, fsync=self._fsync)


class MemorySinkFactory:
    """Creates MemorySinks and keeps them by filename for later inspection."""

    def __init__(self) -> None:
        self.sinks: dict[str, MemorySink] = {}

    def __call__(self, filename: str) -> MemorySink:
        sink = MemorySink(filename)
        self.sinks[filename] = sink
        return sink
