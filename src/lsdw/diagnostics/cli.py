"""Command-line interface for diagnostics and automation.

This module provides CLI commands for:
- Inspecting LNKB binary recordings
- Converting binary recordings to other formats
- Showing and updating recorder preferences
"""

import argparse
import itertools
import logging
import sys
from dataclasses import asdict, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from lsdw.config.preferences import PreferencesStore, RecorderPreferences
from lsdw.errors import LsdwError
from lsdw.models import sample_fields
from lsdw.storage.container import iter_binary_samples, read_header
from lsdw.storage.coordinator import MultiFormatWriter
from lsdw.storage.filename import sink_filepath
from lsdw.storage.formats import OutputFormat


def _store(args: argparse.Namespace) -> PreferencesStore:
    return PreferencesStore(Path(args.prefs_file) if args.prefs_file else None)


def _parse_formats(text: str) -> list[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def cmd_inspect(args: argparse.Namespace) -> int:
    """Print the header and first records of a binary recording."""
    path = Path(args.file)
    limit = args.limit

    try:
        with open(path, "rb") as f:
            header = read_header(f)
            created = datetime.fromtimestamp(header.created_ms / 1000, tz=timezone.utc)

            print(f"File: {path}")
            print(f"Version: {header.version_major}.{header.version_minor}")
            print(f"Data type: {header.data_type.value}")
            print(f"Created: {created.isoformat()} ({header.created_ms} ms)")
            if header.record_size is not None:
                print(f"Record size: {header.record_size} bytes")
            else:
                print("Record size: variable (length-prefixed JSON)")
            print()

            count = 0
            for sample in iter_binary_samples(f, header):
                if count < limit:
                    values = ", ".join(f"{k}={v}" for k, v in sample_fields(sample).items())
                    print(f"  [{count}] {values}")
                count += 1
    except (LsdwError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if count > limit:
        print(f"  ... {count - limit} more")
    print()
    print(f"Records: {count}")
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    """Stream a binary recording into other formats."""
    source = Path(args.file)
    prefs = _store(args).load()
    output_dir = Path(args.out if args.out is not None else prefs.output_directory)
    formats = _parse_formats(args.formats) if args.formats else list(prefs.formats)
    chunk_size = args.chunk_size if args.chunk_size is not None else prefs.chunk_size
    prefix = args.prefix if args.prefix is not None else prefs.filename_prefix

    if chunk_size <= 0:
        print(f"Error: chunk size must be positive, got {chunk_size}", file=sys.stderr)
        return 1

    try:
        with open(source, "rb") as f:
            header = read_header(f)
            data_type = header.data_type

            # Refuse to truncate the file being read
            for fmt in formats:
                target = sink_filepath(output_dir, data_type, fmt, prefix)
                if target.resolve() == source.resolve():
                    print(f"Error: output would overwrite the source file {source}", file=sys.stderr)
                    return 1

            print(f"Converting {source} ({data_type.value}) to {', '.join(formats)}")
            samples = iter_binary_samples(f, header)
            total = 0
            with MultiFormatWriter(
                output_dir,
                data_type=data_type,
                prefix=prefix,
                fsync=prefs.fsync_on_close,
            ) as recorder:
                recorder.initialize(formats)
                while True:
                    chunk = list(itertools.islice(samples, chunk_size))
                    if not chunk:
                        break
                    recorder.write(chunk)
                    total += len(chunk)
    except (LsdwError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print()
    print("Conversion complete.")
    print(f"  Samples: {total}")
    for fmt, size in recorder.sizes_by_format().items():
        print(f"  {fmt}: {recorder.paths_by_format().get(fmt)} ({size} bytes)")
    return 0


def _coerce(name: str, value: str) -> Any:
    """Convert a --set value to the type of the preference field."""
    if name == "formats":
        return _parse_formats(value)
    default = getattr(RecorderPreferences(), name)
    if isinstance(default, bool):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"{name} expects a boolean, got {value!r}")
    if isinstance(default, int):
        return int(value)
    return value


def cmd_prefs(args: argparse.Namespace) -> int:
    """Show or update stored preferences."""
    store = _store(args)
    prefs = store.load()

    if args.set:
        settable = {f.name for f in fields(RecorderPreferences)} - {
            "preferences_version",
            "last_updated_utc",
        }
        try:
            for item in args.set:
                name, sep, value = item.partition("=")
                name = name.strip()
                if not sep or name not in settable:
                    raise ValueError(f"unknown preference {name!r}")
                setattr(prefs, name, _coerce(name, value))
            prefs.validate()
            store.save(prefs)
        except (LsdwError, ValueError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    print(f"Preferences: {store.path}")
    for name, value in asdict(prefs).items():
        if isinstance(value, list):
            value = ",".join(value)
        print(f"  {name} = {value}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="LSDW - LinkBand Sensor Data Writer CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument(
        "--prefs-file",
        default=None,
        help="Preferences file (default: OS user config directory)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show the header and records of a binary recording",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    inspect_parser.add_argument("file", help="LNKB binary file")
    inspect_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of records to print",
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    # convert command
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a binary recording to other formats",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    convert_parser.add_argument("file", help="LNKB binary file")
    convert_parser.add_argument(
        "--out",
        default=None,
        help="Output directory (default from preferences)",
    )
    convert_parser.add_argument(
        "--formats",
        default=None,
        help=f"Comma-separated formats ({', '.join(f.value for f in OutputFormat)}); default from preferences",
    )
    convert_parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Samples per chunk (default from preferences)",
    )
    convert_parser.add_argument(
        "--prefix",
        default=None,
        help="Filename prefix (default from preferences)",
    )
    convert_parser.set_defaults(func=cmd_convert)

    # prefs command
    prefs_parser = subparsers.add_parser(
        "prefs",
        help="Show or update recorder preferences",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    prefs_parser.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Update a preference (repeatable)",
    )
    prefs_parser.set_defaults(func=cmd_prefs)

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
