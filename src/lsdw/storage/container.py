"""LNKB binary container layout, header packing and readers.

The container is a fixed 22-byte header followed by records with no
delimiters. All multi-byte values are little-endian.

Header:
- magic: 4 bytes, ASCII "LNKB"
- version: 2 bytes (major, minor)
- data type: 8 bytes, ASCII tag right-padded with NUL ("processe" for processed)
- created: 8 bytes, uint64 milliseconds since the epoch

Records:
- eeg: timestamp (uint64), fp1, fp2, signal_quality (float32) = 20 bytes
- ppg: timestamp (uint64), red, ir (float32) = 16 bytes
- acc: timestamp (uint64), x, y, z, magnitude (float32) = 24 bytes
- processed: length (uint32) followed by `length` bytes of UTF-8 JSON
"""

import json
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import numpy as np

from lsdw.errors import InvalidHeaderError, TruncatedRecordError, UnsupportedVersionError
from lsdw.models import SAMPLE_TYPES, DataType, ProcessedSample, Sample, sample_from_fields

MAGIC = b"LNKB"
VERSION_MAJOR = 1
VERSION_MINOR = 0
TYPE_TAG_SIZE = 8

# Struct formats (little-endian)
HEADER_FORMAT = "<4sBB8sQ"  # magic, major, minor, type tag, created_ms
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 22 bytes

RECORD_FORMATS: dict[DataType, str] = {
    DataType.EEG: "<Qfff",  # timestamp, fp1, fp2, signal_quality
    DataType.PPG: "<Qff",  # timestamp, red, ir
    DataType.ACC: "<Qffff",  # timestamp, x, y, z, magnitude
}
RECORD_STRUCTS: dict[DataType, struct.Struct] = {
    data_type: struct.Struct(fmt) for data_type, fmt in RECORD_FORMATS.items()
}
RECORD_SIZES: dict[DataType, int] = {
    data_type: s.size for data_type, s in RECORD_STRUCTS.items()
}

# Length prefix for processed records
LENGTH_PREFIX = struct.Struct("<I")
MAX_PAYLOAD_SIZE = 2**32 - 1

# numpy views of the fixed-size records, used to decode whole blocks at once
RECORD_DTYPES: dict[DataType, np.dtype] = {
    DataType.EEG: np.dtype(
        [("timestamp", "<u8"), ("fp1", "<f4"), ("fp2", "<f4"), ("signal_quality", "<f4")]
    ),
    DataType.PPG: np.dtype([("timestamp", "<u8"), ("red", "<f4"), ("ir", "<f4")]),
    DataType.ACC: np.dtype(
        [("timestamp", "<u8"), ("x", "<f4"), ("y", "<f4"), ("z", "<f4"), ("magnitude", "<f4")]
    ),
}

# Type tags as stored; longer identifiers are cut to the field width
TYPE_TAGS: dict[DataType, bytes] = {
    data_type: data_type.value.encode("ascii")[:TYPE_TAG_SIZE] for data_type in DataType
}

# Records decoded per read when streaming fixed-size bodies
DEFAULT_BLOCK_RECORDS = 4096


@dataclass(frozen=True, slots=True)
class ContainerHeader:
    """Parsed LNKB container header.

    Attributes:
        data_type: Sample variant stored in the body.
        created_ms: Creation timestamp in milliseconds since the epoch.
        version_major: Container major version.
        version_minor: Container minor version.
    """

    data_type: DataType
    created_ms: int
    version_major: int = VERSION_MAJOR
    version_minor: int = VERSION_MINOR

    @property
    def record_size(self) -> Optional[int]:
        """Fixed record size in bytes, or None for length-prefixed records."""
        return RECORD_SIZES.get(self.data_type)

    def pack(self) -> bytes:
        """Serialize the header to its 22-byte wire form."""
        tag = TYPE_TAGS[self.data_type].ljust(TYPE_TAG_SIZE, b"\0")
        return struct.pack(
            HEADER_FORMAT,
            MAGIC,
            self.version_major,
            self.version_minor,
            tag,
            self.created_ms,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ContainerHeader":
        """Parse a header from the first 22 bytes of a container.

        Raises:
            InvalidHeaderError: If the data is short, or magic or tag is wrong.
            UnsupportedVersionError: If the major version is not supported.
        """
        if len(data) < HEADER_SIZE:
            raise InvalidHeaderError("size", f"{HEADER_SIZE} bytes", f"{len(data)} bytes")

        magic, major, minor, tag, created_ms = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
        if magic != MAGIC:
            raise InvalidHeaderError("magic", repr(MAGIC), repr(magic))
        if major != VERSION_MAJOR:
            raise UnsupportedVersionError(major, minor)

        tag_text = tag.rstrip(b"\0")
        for data_type, stored in TYPE_TAGS.items():
            if stored == tag_text:
                break
        else:
            raise InvalidHeaderError("data type", "eeg, ppg, acc or processed", repr(tag_text))

        return cls(
            data_type=data_type,
            created_ms=created_ms,
            version_major=major,
            version_minor=minor,
        )


def read_header(stream: BinaryIO) -> ContainerHeader:
    """Read and validate the header from the start of a binary stream."""
    return ContainerHeader.unpack(stream.read(HEADER_SIZE))


def decode_records(data_type: DataType, data: bytes) -> list[Sample]:
    """Decode a buffer holding whole fixed-size records.

    Raises:
        ValueError: If the data type has no fixed record size or the buffer
            is not a whole number of records.
    """
    dtype = RECORD_DTYPES.get(data_type)
    if dtype is None:
        raise ValueError(f"{data_type.value} records are not fixed-size")
    if len(data) % dtype.itemsize:
        raise ValueError(f"buffer of {len(data)} bytes is not a multiple of {dtype.itemsize}")

    records = np.frombuffer(data, dtype=dtype)
    cls = SAMPLE_TYPES[data_type]
    names = dtype.names
    return [
        cls(int(row["timestamp"]), *(float(row[name]) for name in names[1:]))
        for row in records
    ]


def _iter_fixed(
    stream: BinaryIO, data_type: DataType, block_records: int, path: Optional[str]
) -> Iterator[Sample]:
    size = RECORD_SIZES[data_type]
    pending = b""
    while True:
        block = stream.read(size * block_records)
        if not block:
            break
        block = pending + block
        whole = len(block) - len(block) % size
        if whole:
            yield from decode_records(data_type, block[:whole])
        pending = block[whole:]

    if pending:
        raise TruncatedRecordError(data_type.value, size, len(pending), path)


def _iter_processed(stream: BinaryIO, path: Optional[str]) -> Iterator[Sample]:
    while True:
        prefix = stream.read(LENGTH_PREFIX.size)
        if not prefix:
            return
        if len(prefix) < LENGTH_PREFIX.size:
            raise TruncatedRecordError("processed", LENGTH_PREFIX.size, len(prefix), path)
        (length,) = LENGTH_PREFIX.unpack(prefix)
        body = stream.read(length)
        if len(body) < length:
            raise TruncatedRecordError("processed", length, len(body), path)
        yield ProcessedSample(payload=json.loads(body.decode("utf-8")))


def iter_binary_samples(
    stream: BinaryIO,
    header: Optional[ContainerHeader] = None,
    block_records: int = DEFAULT_BLOCK_RECORDS,
) -> Iterator[Sample]:
    """Stream samples from a binary container.

    Args:
        stream: Binary file object positioned at the start of the container,
            or just after the header when ``header`` is given.
        header: Already parsed header. Read from the stream when None.
        block_records: Fixed-size records decoded per read.

    Yields:
        Samples in file order.

    Raises:
        InvalidHeaderError: If the header is malformed.
        TruncatedRecordError: If the body ends inside a record.
    """
    if header is None:
        header = read_header(stream)
    path = getattr(stream, "name", None)
    path = str(path) if path is not None else None

    if header.data_type is DataType.PROCESSED:
        yield from _iter_processed(stream, path)
    else:
        yield from _iter_fixed(stream, header.data_type, block_records, path)


def read_binary_file(path: Path | str) -> tuple[ContainerHeader, list[Sample]]:
    """Read a whole binary container into memory.

    Returns:
        Tuple of (header, samples).
    """
    with open(path, "rb") as f:
        header = read_header(f)
        return header, list(iter_binary_samples(f, header))


def iter_jsonl_samples(path: Path | str, data_type: DataType | str) -> Iterator[Sample]:
    """Stream samples from a line-delimited JSON file.

    Blank lines are skipped.

    Raises:
        ValueError: If a line is not valid JSON or misses required fields.
    """
    data_type = DataType.parse(data_type)
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                fields = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"line {line_number}: {e}") from e
            yield sample_from_fields(data_type, fields)
