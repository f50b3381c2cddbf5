"""Multi-format recording coordinator.

The coordinator owns one FormatWriter per requested output format and fans
every incoming chunk out to all of them on a thread pool. Chunk i is written
by every writer before chunk i+1 is dispatched, so all formats of a recording
hold the same samples in the same order.

Thread model:
- Caller thread: initialize(), write() and finalize() in that order, never
  concurrently.
- Pool threads: one task per writer per chunk; writers share no state.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum, auto
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from lsdw.errors import FormatWriteError, NotInitializedError, WriterNotReadyError
from lsdw.models import DataType
from lsdw.storage.filename import sink_filename
from lsdw.storage.formats import OutputFormat, build_encoder
from lsdw.storage.sinks import DirectorySinkFactory, SinkFactory
from lsdw.storage.writer import FormatWriter, WriterStats

logger = logging.getLogger(__name__)


class CoordinatorState(Enum):
    """Lifecycle of a MultiFormatWriter."""

    NEW = auto()
    OPEN = auto()
    FINALIZED = auto()


class MultiFormatWriter:
    """Writes one recording to several formats at once.

    Example:
        >>> recorder = MultiFormatWriter("/data/session-1", data_type="eeg")
        >>> recorder.initialize(["json", "binary"])
        >>> recorder.write([EEGSample(1000, 10.5, -3.2, 0.9)])
        {'json': 62, 'binary': 20}
        >>> recorder.finalize()
        >>> recorder.sizes_by_format()
        {'json': 62, 'binary': 42}
    """

    def __init__(
        self,
        destination: Optional[Path | str] = None,
        data_type: Optional[DataType | str] = None,
        sink_factory: Optional[SinkFactory] = None,
        clock: Optional[Callable[[], int]] = None,
        prefix: str = "",
        fsync: bool = True,
    ) -> None:
        """Initialize the coordinator.

        Args:
            destination: Directory the format files are created in. Required
                unless a sink factory is given.
            data_type: Default data type for initialize().
            sink_factory: Callable mapping a filename to an open ByteSink.
                Defaults to files under ``destination``.
            clock: Returns milliseconds since the epoch for container headers.
            prefix: Optional filename prefix.
            fsync: Whether file sinks force data to disk on close.

        Raises:
            ValueError: If neither destination nor sink_factory is given.
        """
        if sink_factory is None:
            if destination is None:
                raise ValueError("destination is required when no sink_factory is given")
            sink_factory = DirectorySinkFactory(destination, fsync=fsync)

        self._destination = Path(destination) if destination is not None else None
        self._data_type = DataType.parse(data_type) if data_type is not None else None
        self._sink_factory = sink_factory
        self._clock = clock
        self._prefix = prefix

        self._writers: dict[str, FormatWriter] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._final_stats: dict[str, WriterStats] = {}
        self._final_paths: dict[str, Optional[Path]] = {}

        self._state = CoordinatorState.NEW
        self._state_lock = threading.Lock()

    @property
    def destination(self) -> Optional[Path]:
        return self._destination

    @property
    def data_type(self) -> Optional[DataType]:
        return self._data_type

    @property
    def state(self) -> CoordinatorState:
        with self._state_lock:
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CoordinatorState.OPEN

    @property
    def formats(self) -> list[str]:
        """Format identifiers in initialization order."""
        return list(self._writers or self._final_stats)

    def initialize(
        self,
        formats: Iterable[OutputFormat | str],
        data_type: Optional[DataType | str] = None,
    ) -> None:
        """Open one writer per requested format.

        Every identifier is validated before any sink is opened. Duplicates
        are ignored. If opening a sink or writing a preamble fails, writers
        opened so far are closed and the coordinator stays uninitialized.

        Args:
            formats: Format identifiers (json, csv, binary) in the order the
                writers should be created.
            data_type: Data type of the recording. Defaults to the one given
                to the constructor.

        Raises:
            UnsupportedFormatError: If a format identifier is unknown.
            UnsupportedDataTypeError: If the data type is unknown.
            WriterNotReadyError: If already initialized or finalized.
            ValueError: If no format or no data type is given.
            IoError: If a sink cannot be opened.
        """
        with self._state_lock:
            if self._state != CoordinatorState.NEW:
                raise WriterNotReadyError(state=self._state.name)

        requested: list[OutputFormat] = []
        for fmt in formats:
            parsed = OutputFormat.parse(fmt)
            if parsed in requested:
                logger.debug("Ignoring duplicate format %s", parsed.value)
                continue
            requested.append(parsed)
        if not requested:
            raise ValueError("at least one output format is required")

        if data_type is not None:
            self._data_type = DataType.parse(data_type)
        if self._data_type is None:
            raise ValueError("data_type is required")

        writers: dict[str, FormatWriter] = {}
        try:
            for fmt in requested:
                writer = FormatWriter(build_encoder(fmt, self._data_type, clock=self._clock))
                sink = self._sink_factory(sink_filename(self._data_type, fmt, self._prefix))
                writers[fmt.value] = writer
                writer.initialize(sink)
        except BaseException:
            self._rollback(writers)
            raise

        self._writers = writers
        self._executor = ThreadPoolExecutor(
            max_workers=len(writers),
            thread_name_prefix="lsdw-writer",
        )
        with self._state_lock:
            self._state = CoordinatorState.OPEN
        logger.info(
            "Recording %s to %s",
            self._data_type.value,
            ", ".join(writers),
        )

    def write(self, samples: Sequence[Any]) -> dict[str, int]:
        """Write one chunk to every format concurrently.

        Returns once every writer has finished with the chunk. A failing
        format does not stop the others; writers that succeeded keep the
        chunk.

        Args:
            samples: Ordered samples of the recording's data type.

        Returns:
            Bytes appended per format.

        Raises:
            NotInitializedError: If not initialized or already finalized.
            FormatWriteError: If one or more formats failed. Carries the
                per-format causes and committed byte counts.
        """
        if self.state != CoordinatorState.OPEN:
            raise NotInitializedError("write")
        if not isinstance(samples, Sequence):
            samples = list(samples)

        results, failures = self._run_all(lambda writer: writer.write_chunk(samples))
        if failures:
            raise FormatWriteError("write", failures, self.sizes_by_format())
        return results

    def finalize(self) -> None:
        """Finalize every writer concurrently and release them.

        Idempotent. Sizes and stats remain readable afterwards.

        Raises:
            NotInitializedError: If initialize() was never called.
            FormatWriteError: If one or more sinks failed to close. Every
                writer is finalized before this is raised.
        """
        with self._state_lock:
            if self._state == CoordinatorState.FINALIZED:
                return
            if self._state == CoordinatorState.NEW:
                raise NotInitializedError("finalize")
            self._state = CoordinatorState.FINALIZED

        try:
            _, failures = self._run_all(lambda writer: writer.finalize())
        finally:
            self._final_stats = {fmt: w.stats() for fmt, w in self._writers.items()}
            self._final_paths = {fmt: w.path for fmt, w in self._writers.items()}
            self._writers.clear()
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

        logger.info("Recording finalized (%d bytes)", self.total_size())
        if failures:
            raise FormatWriteError(
                "finalize",
                failures,
                {fmt: s.bytes_written for fmt, s in self._final_stats.items()},
            )

    def sizes_by_format(self) -> dict[str, int]:
        """Current byte counter of every format, in initialization order."""
        if self._writers:
            return {fmt: writer.estimated_size() for fmt, writer in self._writers.items()}
        return {fmt: s.bytes_written for fmt, s in self._final_stats.items()}

    def total_size(self) -> int:
        """Sum of all byte counters."""
        return sum(self.sizes_by_format().values())

    def stats(self) -> dict[str, WriterStats]:
        """Statistics of every writer, in initialization order."""
        if self._writers:
            return {fmt: writer.stats() for fmt, writer in self._writers.items()}
        return dict(self._final_stats)

    def paths_by_format(self) -> dict[str, Optional[Path]]:
        """Output path of every format (None for sinks without a path)."""
        if self._writers:
            return {fmt: writer.path for fmt, writer in self._writers.items()}
        return dict(self._final_paths)

    def _run_all(
        self, task: Callable[[FormatWriter], Any]
    ) -> tuple[dict[str, Any], dict[str, BaseException]]:
        """Run a task on every writer in parallel and wait for all of them."""
        futures: dict[str, Future] = {
            fmt: self._executor.submit(task, writer) for fmt, writer in self._writers.items()
        }
        wait(futures.values())

        results: dict[str, Any] = {}
        failures: dict[str, BaseException] = {}
        for fmt, future in futures.items():
            error = future.exception()
            if error is not None:
                logger.debug("%s writer failed: %s", fmt, error)
                failures[fmt] = error
            else:
                results[fmt] = future.result()
        return results, failures

    @staticmethod
    def _rollback(writers: dict[str, FormatWriter]) -> None:
        for fmt, writer in writers.items():
            if not writer.is_open:
                continue
            try:
                writer.finalize()
            except Exception as e:
                logger.warning("Failed to close %s writer during rollback: %s", fmt, e)

    def __enter__(self) -> "MultiFormatWriter":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self.is_open:
            self.finalize()
