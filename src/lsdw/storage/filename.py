"""Filename generation for recording sinks.

Every format of a recording gets a deterministic name derived from the data
type: ``<data_type>_data.<ext>``, optionally preceded by a sanitized prefix.
"""

from __future__ import annotations

import re
from pathlib import Path

from lsdw.models import DataType
from lsdw.storage.formats import OutputFormat


# Characters to strip from prefix (reserved on Windows and generally problematic)
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f ]')


def sanitize_prefix(prefix: str) -> str:
    """Sanitize a filename prefix for filesystem safety.

    Removes characters that are invalid on Windows, macOS, or Linux
    filesystems, collapses runs of separators and strips leading and trailing
    dots.

    Args:
        prefix: User-provided filename prefix.

    Returns:
        Sanitized prefix, possibly empty.
    """
    if not prefix:
        return ""

    sanitized = _UNSAFE_CHARS.sub("", prefix)
    sanitized = re.sub(r"[_\-]{2,}", "_", sanitized)
    return sanitized.strip(" .")


def sink_filename(
    data_type: DataType | str,
    output_format: OutputFormat | str,
    prefix: str = "",
) -> str:
    """Return the sink filename for one format of a recording.

    Args:
        data_type: Sample data type (eeg, ppg, acc, processed).
        output_format: Output format (json, csv, binary).
        prefix: Optional prefix, sanitized before use.

    Raises:
        UnsupportedDataTypeError: If the data type is unknown.
        UnsupportedFormatError: If the format is unknown.
    """
    data_type = DataType.parse(data_type)
    output_format = OutputFormat.parse(output_format)

    name = f"{data_type.value}_data.{output_format.extension}"
    safe_prefix = sanitize_prefix(prefix)
    if safe_prefix:
        return f"{safe_prefix}_{name}"
    return name


def sink_filepath(
    output_directory: Path | str,
    data_type: DataType | str,
    output_format: OutputFormat | str,
    prefix: str = "",
) -> Path:
    """Return the full path of a sink under an output directory."""
    return Path(output_directory) / sink_filename(data_type, output_format, prefix)
