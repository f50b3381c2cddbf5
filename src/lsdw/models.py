"""Core data models for sensor samples."""

import dataclasses
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

from lsdw.errors import UnsupportedDataTypeError

# Timestamps are stored as unsigned 64-bit milliseconds since the epoch
TIMESTAMP_MAX = 2**64 - 1


class DataType(Enum):
    """Sample variant a writer is bound to."""

    EEG = "eeg"
    PPG = "ppg"
    ACC = "acc"
    PROCESSED = "processed"

    @classmethod
    def parse(cls, value: "DataType | str") -> "DataType":
        """Resolve a DataType from a member or its string tag.

        Raises:
            UnsupportedDataTypeError: If the tag is unknown.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedDataTypeError(str(value)) from None


def _check_timestamp(timestamp: int) -> None:
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ValueError(f"timestamp must be an integer, got {type(timestamp).__name__}")
    if timestamp < 0 or timestamp > TIMESTAMP_MAX:
        raise ValueError(f"timestamp must fit in an unsigned 64-bit integer, got {timestamp}")


@dataclass(frozen=True, slots=True)
class EEGSample:
    """A two-channel EEG reading.

    Attributes:
        timestamp: Milliseconds since the epoch.
        fp1: Left prefrontal channel in microvolts.
        fp2: Right prefrontal channel in microvolts.
        signal_quality: Signal quality index; 0 when the device does not report it.
    """

    timestamp: int
    fp1: float
    fp2: float
    signal_quality: float = 0.0

    def __post_init__(self) -> None:
        _check_timestamp(self.timestamp)
        if self.signal_quality is None:
            object.__setattr__(self, "signal_quality", 0.0)


@dataclass(frozen=True, slots=True)
class PPGSample:
    """A photoplethysmography reading (red and infrared LEDs)."""

    timestamp: int
    red: float
    ir: float

    def __post_init__(self) -> None:
        _check_timestamp(self.timestamp)


@dataclass(frozen=True, slots=True)
class ACCSample:
    """A three-axis accelerometer reading with its vector magnitude."""

    timestamp: int
    x: float
    y: float
    z: float
    magnitude: float

    def __post_init__(self) -> None:
        _check_timestamp(self.timestamp)

    @classmethod
    def from_axes(cls, timestamp: int, x: float, y: float, z: float) -> "ACCSample":
        """Build a sample computing magnitude as sqrt(x^2 + y^2 + z^2)."""
        return cls(timestamp=timestamp, x=x, y=y, z=z, magnitude=math.sqrt(x * x + y * y + z * z))


@dataclass(frozen=True, slots=True)
class ProcessedSample:
    """A pre-processed derivative record stored opaquely as JSON.

    Attributes:
        payload: Any JSON-serializable value (typically a mapping of metrics).
    """

    payload: Any


Sample = Union[EEGSample, PPGSample, ACCSample, ProcessedSample]

SAMPLE_TYPES: dict[DataType, type] = {
    DataType.EEG: EEGSample,
    DataType.PPG: PPGSample,
    DataType.ACC: ACCSample,
    DataType.PROCESSED: ProcessedSample,
}


def data_type_of(sample: Any) -> DataType:
    """Return the DataType a sample instance belongs to.

    Raises:
        TypeError: If the object is not one of the sample classes.
    """
    for data_type, cls in SAMPLE_TYPES.items():
        if isinstance(sample, cls):
            return data_type
    raise TypeError(f"not a sample: {type(sample).__name__}")


def sample_fields(sample: Any) -> dict[str, Any]:
    """Return a sample's fields in declaration order.

    Typed samples yield their dataclass fields. Processed samples yield their
    payload's own keys when it is a mapping and a single ``value`` column
    otherwise. Plain mappings pass through unchanged.
    """
    if isinstance(sample, ProcessedSample):
        payload = sample.payload
        if isinstance(payload, Mapping):
            return dict(payload)
        return {"value": payload}
    if isinstance(sample, Mapping):
        return dict(sample)
    if dataclasses.is_dataclass(sample) and not isinstance(sample, type):
        return {f.name: getattr(sample, f.name) for f in dataclasses.fields(sample)}
    raise TypeError(f"not a sample: {type(sample).__name__}")


def sample_from_fields(data_type: "DataType | str", fields: Any) -> Sample:
    """Rebuild a sample from a decoded mapping (the inverse of sample_fields).

    Raises:
        UnsupportedDataTypeError: If the data type is unknown.
        ValueError: If required fields are missing or invalid.
    """
    data_type = DataType.parse(data_type)
    if data_type is DataType.PROCESSED:
        return ProcessedSample(payload=fields)

    cls = SAMPLE_TYPES[data_type]
    if not isinstance(fields, Mapping):
        raise ValueError(f"{data_type.value} record must be an object, got {type(fields).__name__}")
    names = [f.name for f in dataclasses.fields(cls)]
    kwargs = {name: fields[name] for name in names if name in fields}
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValueError(f"invalid {data_type.value} record: {e}") from e
