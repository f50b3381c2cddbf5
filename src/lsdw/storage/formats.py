"""Export format implementations (line-delimited JSON, CSV, LNKB binary).

Each encoder turns an ordered chunk of samples into one byte string. The
writer appends that string to its sink in a single call, so a record is never
split across writes.
"""

import json
import logging
import struct
import time
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from lsdw.errors import EncodingError, UnsupportedFormatError
from lsdw.models import DataType, ProcessedSample, data_type_of, sample_fields
from lsdw.storage.container import (
    LENGTH_PREFIX,
    MAX_PAYLOAD_SIZE,
    RECORD_STRUCTS,
    ContainerHeader,
)

logger = logging.getLogger(__name__)

FORMAT_JSON = "json"
FORMAT_CSV = "csv"
FORMAT_BINARY = "binary"

# Compact separators, one object per line
_JSON_SEPARATORS = (",", ":")
_CSV_SPECIAL_CHARS = (",", '"', "\n")


class OutputFormat(Enum):
    """On-disk encodings a recording can be written in."""

    JSON = FORMAT_JSON
    CSV = FORMAT_CSV
    BINARY = FORMAT_BINARY

    @property
    def extension(self) -> str:
        """File extension without the dot."""
        return _EXTENSIONS[self]

    @classmethod
    def parse(cls, value: "OutputFormat | str") -> "OutputFormat":
        """Resolve a format from a member or identifier (case-insensitive).

        Raises:
            UnsupportedFormatError: If the identifier is unknown.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedFormatError(str(value)) from None


_EXTENSIONS = {
    OutputFormat.JSON: "jsonl",
    OutputFormat.CSV: "csv",
    OutputFormat.BINARY: "bin",
}


class SampleEncoder(Protocol):
    """Converts chunks of samples into bytes for one output format."""

    format: OutputFormat

    def preamble(self) -> bytes:
        """Bytes written once when the writer opens its sink."""

    def encode(self, samples: Sequence[Any]) -> bytes:
        """Encode an ordered chunk. An empty chunk encodes to b""."""


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=_JSON_SEPARATORS, ensure_ascii=False, allow_nan=False)


class JsonLinesEncoder:
    """One self-describing JSON object per sample, newline terminated."""

    format = OutputFormat.JSON

    def preamble(self) -> bytes:
        return b""

    def encode(self, samples: Sequence[Any]) -> bytes:
        lines: list[str] = []
        for index, sample in enumerate(samples):
            try:
                value = sample.payload if isinstance(sample, ProcessedSample) else sample_fields(sample)
                lines.append(_dumps(value) + "\n")
            except (TypeError, ValueError) as e:
                raise EncodingError(FORMAT_JSON, str(e), index=index) from e
        return "".join(lines).encode("utf-8")


def _format_value(val: Any) -> str:
    """Format a single value for a CSV cell."""
    if val is None:
        return ""
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (Mapping, list, tuple)):
        # Nested structures are kept readable as JSON
        return _escape(json.dumps(val, separators=_JSON_SEPARATORS, ensure_ascii=False))
    if isinstance(val, str):
        return _escape(val)
    return str(val)


def _escape(text: str) -> str:
    """Quote a string per RFC 4180 when it contains a delimiter, quote or newline."""
    if any(ch in text for ch in _CSV_SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


class CsvEncoder:
    """Header from the first non-empty chunk, then one row per sample.

    The column set is fixed once the header is emitted. Fields that later
    samples add are dropped and fields they lack render empty.
    """

    format = OutputFormat.CSV

    def __init__(self) -> None:
        self._columns: Optional[list[str]] = None
        self._warned_dropped = False

    @property
    def columns(self) -> Optional[list[str]]:
        """Column names, or None until the header has been emitted."""
        return list(self._columns) if self._columns is not None else None

    @property
    def header_written(self) -> bool:
        return self._columns is not None

    def preamble(self) -> bytes:
        return b""

    def encode(self, samples: Sequence[Any]) -> bytes:
        if not samples:
            return b""

        lines: list[str] = []
        columns = self._columns
        if columns is None:
            try:
                columns = list(sample_fields(samples[0]))
            except TypeError as e:
                raise EncodingError(FORMAT_CSV, str(e), index=0) from e
            lines.append(",".join(_escape(str(col)) for col in columns) + "\n")

        dropped: set[str] = set()
        for index, sample in enumerate(samples):
            try:
                row = sample_fields(sample)
                lines.append(",".join(_format_value(row.get(col)) for col in columns) + "\n")
            except (TypeError, ValueError) as e:
                raise EncodingError(FORMAT_CSV, str(e), index=index) from e
            dropped.update(key for key in row if key not in columns)

        # Commit the header only once the whole chunk encoded
        self._columns = columns

        if dropped and not self._warned_dropped:
            self._warned_dropped = True
            logger.warning(
                "CSV columns are fixed to %s; dropping fields %s",
                columns,
                sorted(dropped),
            )
        return "".join(lines).encode("utf-8")


class BinaryEncoder:
    """LNKB container encoder bound to a single data type.

    Args:
        data_type: Sample variant stored in the container.
        clock: Returns the creation timestamp in milliseconds since the epoch.
    """

    format = OutputFormat.BINARY

    def __init__(self, data_type: DataType | str, clock: Optional[Callable[[], int]] = None) -> None:
        self._data_type = DataType.parse(data_type)
        self._clock = clock or _now_ms
        self._record = RECORD_STRUCTS.get(self._data_type)

    @property
    def data_type(self) -> DataType:
        return self._data_type

    def preamble(self) -> bytes:
        return ContainerHeader(data_type=self._data_type, created_ms=int(self._clock())).pack()

    def encode(self, samples: Sequence[Any]) -> bytes:
        parts: list[bytes] = []
        for index, sample in enumerate(samples):
            try:
                parts.append(self._encode_one(sample))
            except EncodingError:
                raise
            except (TypeError, ValueError, OverflowError, struct.error) as e:
                raise EncodingError(FORMAT_BINARY, str(e), self._data_type.value, index) from e
        return b"".join(parts)

    def _encode_one(self, sample: Any) -> bytes:
        try:
            actual = data_type_of(sample)
        except TypeError as e:
            raise EncodingError(FORMAT_BINARY, str(e), self._data_type.value) from e
        if actual is not self._data_type:
            raise EncodingError(
                FORMAT_BINARY,
                f"{actual.value} sample written to a {self._data_type.value} container",
                self._data_type.value,
            )

        if self._data_type is DataType.PROCESSED:
            body = _dumps(sample.payload).encode("utf-8")
            if len(body) > MAX_PAYLOAD_SIZE:
                raise ValueError(f"payload of {len(body)} bytes exceeds {MAX_PAYLOAD_SIZE}")
            return LENGTH_PREFIX.pack(len(body)) + body

        return self._record.pack(*sample_fields(sample).values())


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def build_encoder(
    output_format: OutputFormat | str,
    data_type: DataType | str,
    clock: Optional[Callable[[], int]] = None,
) -> SampleEncoder:
    """Create the encoder for an output format.

    Raises:
        UnsupportedFormatError: If the format identifier is unknown.
    """
    output_format = OutputFormat.parse(output_format)
    if output_format is OutputFormat.JSON:
        return JsonLinesEncoder()
    if output_format is OutputFormat.CSV:
        return CsvEncoder()
    return BinaryEncoder(data_type, clock=clock)
