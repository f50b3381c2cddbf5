"""Single-format streaming writer.

A FormatWriter pairs one encoder with one sink and owns the sink for its
lifetime. Chunks are encoded in full and handed to the sink in one write,
and a running byte counter tracks exactly what was appended.

Lifecycle: UNINITIALIZED -> OPEN -> CLOSED.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Any, Optional, Sequence

from lsdw.errors import (
    NotInitializedError,
    SinkCloseError,
    SinkWriteError,
    WriterNotReadyError,
)
from lsdw.storage.formats import SampleEncoder
from lsdw.storage.sinks import ByteSink

logger = logging.getLogger(__name__)


class WriterState(Enum):
    """State of a format writer."""

    UNINITIALIZED = auto()
    OPEN = auto()
    CLOSED = auto()


@dataclass(frozen=True, slots=True)
class WriterStats:
    """Statistics for a format writer."""

    format: str
    state: WriterState
    samples_written: int
    chunks_written: int
    bytes_written: int

    @property
    def avg_bytes_per_sample(self) -> float:
        """Mean encoded size per sample, header included (0.0 when empty)."""
        return self.bytes_written / self.samples_written if self.samples_written > 0 else 0.0


class FormatWriter:
    """Streaming writer for one output format.

    Example:
        >>> writer = FormatWriter(BinaryEncoder("eeg"))
        >>> writer.initialize(FileSink("eeg_data.bin"))
        >>> writer.write_chunk([EEGSample(1000, 10.5, -3.2, 0.9)])
        20
        >>> writer.finalize()
        >>> writer.estimated_size()
        42
    """

    def __init__(self, encoder: SampleEncoder) -> None:
        self._encoder = encoder
        self._format = encoder.format.value
        self._sink: Optional[ByteSink] = None
        self._path: Optional[Path] = None

        self._state = WriterState.UNINITIALIZED
        self._state_lock = threading.Lock()

        self._samples_written = 0
        self._chunks_written = 0
        self._bytes_written = 0
        self._stats_lock = threading.Lock()

    @property
    def format(self) -> str:
        """Output format identifier (json, csv, binary)."""
        return self._format

    @property
    def encoder(self) -> SampleEncoder:
        return self._encoder

    @property
    def state(self) -> WriterState:
        """Current writer state."""
        with self._state_lock:
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == WriterState.OPEN

    @property
    def path(self) -> Optional[Path]:
        """Path of the sink when it is file-backed."""
        return self._path

    def initialize(self, sink: ByteSink) -> None:
        """Take ownership of a sink and write the format preamble.

        Args:
            sink: Destination the writer owns until finalize().

        Raises:
            WriterNotReadyError: If the writer was already initialized.
            IoError: If writing the preamble fails. The writer stays open so
                the caller can finalize it.
        """
        with self._state_lock:
            if self._state != WriterState.UNINITIALIZED:
                raise WriterNotReadyError(self._format, self._state.name)
            self._state = WriterState.OPEN
        self._sink = sink
        self._path = getattr(sink, "path", None)

        preamble = self._encoder.preamble()
        if preamble:
            self._append(preamble)
        logger.info("Opened %s writer on %s", self._format, sink.name)

    def write_chunk(self, samples: Sequence[Any]) -> int:
        """Encode a chunk and append it to the sink.

        Args:
            samples: Ordered samples of the writer's data type.

        Returns:
            Number of bytes appended (0 for an empty chunk).

        Raises:
            NotInitializedError: If the writer is not open.
            EncodingError: If a sample cannot be serialized. Nothing from the
                chunk is written.
            IoError: If the sink rejects the write.
        """
        if self.state != WriterState.OPEN:
            raise NotInitializedError("write chunk", self._format)

        data = self._encoder.encode(samples)
        if data:
            self._append(data)
        with self._stats_lock:
            self._samples_written += len(samples)
            if samples:
                self._chunks_written += 1
        logger.debug("%s: wrote %d samples (%d bytes)", self._format, len(samples), len(data))
        return len(data)

    def finalize(self) -> None:
        """Flush and close the sink.

        Idempotent once closed. The writer is CLOSED afterwards even when the
        sink fails to close.

        Raises:
            NotInitializedError: If the writer was never initialized.
            IoError: If flushing or closing the sink fails.
        """
        with self._state_lock:
            if self._state == WriterState.CLOSED:
                return
            if self._state == WriterState.UNINITIALIZED:
                raise NotInitializedError("finalize", self._format)
            self._state = WriterState.CLOSED

        sink, self._sink = self._sink, None
        try:
            try:
                sink.flush()
            finally:
                sink.close()
        except OSError as e:
            raise SinkCloseError(sink.name, str(e)) from e
        logger.info("Closed %s writer (%d bytes)", self._format, self.estimated_size())

    def estimated_size(self) -> int:
        """Bytes appended to the sink so far, preamble included."""
        with self._stats_lock:
            return self._bytes_written

    def stats(self) -> WriterStats:
        """Get current writer statistics."""
        with self._stats_lock:
            return WriterStats(
                format=self._format,
                state=self.state,
                samples_written=self._samples_written,
                chunks_written=self._chunks_written,
                bytes_written=self._bytes_written,
            )

    def _append(self, data: bytes) -> None:
        try:
            self._sink.write(data)
        except OSError as e:
            raise SinkWriteError(self._sink.name, str(e), self.estimated_size()) from e
        with self._stats_lock:
            self._bytes_written += len(data)
