"""Streaming multi-format storage of sensor recordings."""

from lsdw.storage.container import (
    ContainerHeader,
    iter_binary_samples,
    iter_jsonl_samples,
    read_binary_file,
)
from lsdw.storage.coordinator import CoordinatorState, MultiFormatWriter
from lsdw.storage.formats import (
    BinaryEncoder,
    CsvEncoder,
    JsonLinesEncoder,
    OutputFormat,
    SampleEncoder,
    build_encoder,
)
from lsdw.storage.sinks import (
    ByteSink,
    DirectorySinkFactory,
    FileSink,
    MemorySink,
    MemorySinkFactory,
    SinkFactory,
)
from lsdw.storage.writer import FormatWriter, WriterState, WriterStats

__all__ = [
    "BinaryEncoder",
    "ByteSink",
    "ContainerHeader",
    "CoordinatorState",
    "CsvEncoder",
    "DirectorySinkFactory",
    "FileSink",
    "FormatWriter",
    "JsonLinesEncoder",
    "MemorySink",
    "MemorySinkFactory",
    "MultiFormatWriter",
    "OutputFormat",
    "SampleEncoder",
    "SinkFactory",
    "WriterState",
    "WriterStats",
    "build_encoder",
    "iter_binary_samples",
    "iter_jsonl_samples",
    "read_binary_file",
]
