"""Tests for sink filename generation."""

from pathlib import Path

import pytest

from lsdw.errors import UnsupportedDataTypeError, UnsupportedFormatError
from lsdw.models import DataType
from lsdw.storage.filename import sanitize_prefix, sink_filename, sink_filepath
from lsdw.storage.formats import OutputFormat


class TestSanitizePrefix:
    """Tests for prefix sanitization."""

    def test_empty_prefix(self) -> None:
        assert sanitize_prefix("") == ""

    def test_valid_prefix_unchanged(self) -> None:
        assert sanitize_prefix("subject-07") == "subject-07"

    def test_removes_unsafe_characters(self) -> None:
        assert sanitize_prefix('sub<j>:e"c/t\\|?*') == "subject"

    def test_removes_spaces(self) -> None:
        assert sanitize_prefix("my session") == "mysession"

    def test_collapses_separators(self) -> None:
        assert sanitize_prefix("a__b--c") == "a_b_c"

    def test_strips_dots(self) -> None:
        assert sanitize_prefix("..hidden.") == "hidden"


class TestSinkFilename:
    """Tests for sink_filename()."""

    @pytest.mark.parametrize(
        ("data_type", "output_format", "expected"),
        [
            ("eeg", "json", "eeg_data.jsonl"),
            ("ppg", "csv", "ppg_data.csv"),
            ("acc", "binary", "acc_data.bin"),
            ("processed", "json", "processed_data.jsonl"),
        ],
    )
    def test_names(self, data_type: str, output_format: str, expected: str) -> None:
        assert sink_filename(data_type, output_format) == expected

    def test_accepts_enums(self) -> None:
        assert sink_filename(DataType.EEG, OutputFormat.CSV) == "eeg_data.csv"

    def test_with_prefix(self) -> None:
        assert sink_filename("eeg", "binary", "subject 07") == "subject07_eeg_data.bin"

    def test_prefix_sanitized_to_empty(self) -> None:
        assert sink_filename("eeg", "csv", "///") == "eeg_data.csv"

    def test_unknown_format(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            sink_filename("eeg", "xml")

    def test_unknown_data_type(self) -> None:
        with pytest.raises(UnsupportedDataTypeError):
            sink_filename("ecg", "json")


class TestSinkFilepath:
    def test_joins_directory(self, tmp_path: Path) -> None:
        assert sink_filepath(tmp_path, "ppg", "json") == tmp_path / "ppg_data.jsonl"
