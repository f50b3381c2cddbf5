"""Tests for export format encoders."""

import json
import logging
import struct

import pytest

from lsdw.errors import EncodingError, UnsupportedFormatError
from lsdw.models import DataType, EEGSample, PPGSample, ProcessedSample
from lsdw.storage.container import ContainerHeader
from lsdw.storage.formats import (
    FORMAT_BINARY,
    FORMAT_CSV,
    FORMAT_JSON,
    BinaryEncoder,
    CsvEncoder,
    JsonLinesEncoder,
    OutputFormat,
    build_encoder,
)


class TestOutputFormat:
    """Tests for format identifiers."""

    def test_values(self) -> None:
        assert [f.value for f in OutputFormat] == [FORMAT_JSON, FORMAT_CSV, FORMAT_BINARY]

    def test_extensions(self) -> None:
        assert OutputFormat.JSON.extension == "jsonl"
        assert OutputFormat.CSV.extension == "csv"
        assert OutputFormat.BINARY.extension == "bin"

    def test_parse_case_insensitive(self) -> None:
        assert OutputFormat.parse("Binary") is OutputFormat.BINARY

    def test_parse_unknown(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            OutputFormat.parse("xml")


class TestJsonLinesEncoder:
    """Tests for line-delimited JSON."""

    def test_one_object_per_line(self, eeg_samples: list[EEGSample]) -> None:
        data = JsonLinesEncoder().encode(eeg_samples).decode("utf-8")
        lines = data.splitlines()
        assert data.endswith("\n")
        assert len(lines) == 2
        assert json.loads(lines[0]) == {
            "timestamp": 1000,
            "fp1": 10.5,
            "fp2": -3.25,
            "signal_quality": 0.5,
        }

    def test_compact_and_ordered(self) -> None:
        data = JsonLinesEncoder().encode([PPGSample(1, 2.0, 3.0)])
        assert data == b'{"timestamp":1,"red":2.0,"ir":3.0}\n'

    def test_no_preamble(self) -> None:
        assert JsonLinesEncoder().preamble() == b""

    def test_empty_chunk(self) -> None:
        assert JsonLinesEncoder().encode([]) == b""

    def test_processed_payload_written_as_is(self) -> None:
        data = JsonLinesEncoder().encode([ProcessedSample([1, "two"]), ProcessedSample({"é": 1})])
        assert data == '[1,"two"]\n{"é":1}\n'.encode("utf-8")

    def test_nan_rejected(self) -> None:
        with pytest.raises(EncodingError) as exc_info:
            JsonLinesEncoder().encode([EEGSample(1, 1.0, 2.0), EEGSample(2, float("nan"), 0.0)])
        assert "(sample 1)" in exc_info.value.message

    def test_unserializable_payload(self) -> None:
        with pytest.raises(EncodingError):
            JsonLinesEncoder().encode([ProcessedSample({"values": {1, 2}})])

    def test_non_sample_rejected(self) -> None:
        with pytest.raises(EncodingError):
            JsonLinesEncoder().encode([object()])


class TestCsvEncoder:
    """Tests for tabular text output."""

    def test_header_then_rows(self, eeg_samples: list[EEGSample]) -> None:
        data = CsvEncoder().encode(eeg_samples).decode("utf-8")
        assert data == (
            "timestamp,fp1,fp2,signal_quality\n"
            "1000,10.5,-3.25,0.5\n"
            "1004,11.0,-2.75,0.75\n"
        )

    def test_header_written_once(self, eeg_samples: list[EEGSample]) -> None:
        encoder = CsvEncoder()
        encoder.encode(eeg_samples[:1])
        second = encoder.encode(eeg_samples[1:]).decode("utf-8")
        assert second == "1004,11.0,-2.75,0.75\n"
        assert encoder.columns == ["timestamp", "fp1", "fp2", "signal_quality"]

    def test_empty_chunk_writes_nothing(self) -> None:
        encoder = CsvEncoder()
        assert encoder.encode([]) == b""
        assert not encoder.header_written
        assert encoder.columns is None

    def test_empty_then_nonempty_gets_header(self) -> None:
        encoder = CsvEncoder()
        encoder.encode([])
        assert encoder.encode([PPGSample(1, 2.0, 3.0)]).startswith(b"timestamp,red,ir\n")

    def test_escaping(self) -> None:
        sample = ProcessedSample({"note": 'say "hi", ok', "multi": "a\nb", "plain": "x"})
        data = CsvEncoder().encode([sample]).decode("utf-8")
        assert data == 'note,multi,plain\n"say ""hi"", ok","a\nb",x\n'

    def test_bool_none_and_nested(self) -> None:
        sample = ProcessedSample({"ok": True, "missing": None, "bands": [1, 2], "meta": {"k": "v"}})
        rows = CsvEncoder().encode([sample]).decode("utf-8").splitlines()
        assert rows[1] == 'true,,"[1,2]","{""k"":""v""}"'

    def test_missing_fields_render_empty(self) -> None:
        encoder = CsvEncoder()
        data = encoder.encode([ProcessedSample({"a": 1, "b": 2}), ProcessedSample({"a": 3})])
        assert data.decode("utf-8").splitlines() == ["a,b", "1,2", "3,"]

    def test_extra_fields_dropped_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        encoder = CsvEncoder()
        with caplog.at_level(logging.WARNING, logger="lsdw.storage.formats"):
            first = encoder.encode([ProcessedSample({"a": 1})])
            second = encoder.encode([ProcessedSample({"a": 2, "b": 3})])
            encoder.encode([ProcessedSample({"a": 4, "c": 5})])

        assert first == b"a\n1\n"
        assert second == b"2\n"
        warnings = [r for r in caplog.records if "dropping fields" in r.getMessage()]
        assert len(warnings) == 1
        assert "'b'" in warnings[0].getMessage()

    def test_scalar_processed_payload(self) -> None:
        data = CsvEncoder().encode([ProcessedSample(1.5), ProcessedSample("x,y")])
        assert data == b'value\n1.5\n"x,y"\n'

    def test_failed_chunk_does_not_commit_header(self) -> None:
        encoder = CsvEncoder()
        with pytest.raises(EncodingError):
            encoder.encode([PPGSample(1, 2.0, 3.0), object()])
        assert not encoder.header_written


class TestBinaryEncoder:
    """Tests for the LNKB binary encoder."""

    def test_preamble_is_header(self, clock) -> None:
        encoder = BinaryEncoder("eeg", clock=clock)
        header = ContainerHeader.unpack(encoder.preamble())
        assert header.data_type is DataType.EEG
        assert header.created_ms == clock()

    def test_preamble_uses_wall_clock_by_default(self) -> None:
        header = ContainerHeader.unpack(BinaryEncoder(DataType.PPG).preamble())
        assert header.created_ms > 1_600_000_000_000

    def test_eeg_records(self, eeg_samples: list[EEGSample]) -> None:
        data = BinaryEncoder("eeg").encode(eeg_samples)
        assert len(data) == 40
        assert data[:20] == struct.pack("<Qfff", 1000, 10.5, -3.25, 0.5)

    def test_missing_signal_quality_agrees_with_json(self) -> None:
        """JSON and binary both record an unreported signal quality as 0."""
        sample = EEGSample(1000, 1.0, 2.0, None)
        line = JsonLinesEncoder().encode([sample])
        assert line == b'{"timestamp":1000,"fp1":1.0,"fp2":2.0,"signal_quality":0.0}\n'
        assert BinaryEncoder("eeg").encode([sample]) == struct.pack("<Qfff", 1000, 1.0, 2.0, 0.0)

    def test_ppg_record_size(self, ppg_samples: list[PPGSample]) -> None:
        assert len(BinaryEncoder("ppg").encode(ppg_samples)) == 16 * len(ppg_samples)

    def test_acc_record_size(self, acc_samples) -> None:
        assert len(BinaryEncoder("acc").encode(acc_samples)) == 24 * len(acc_samples)

    def test_processed_length_prefix(self) -> None:
        data = BinaryEncoder("processed").encode([ProcessedSample({"a": 1})])
        assert data == struct.pack("<I", 7) + b'{"a":1}'

    def test_empty_chunk(self) -> None:
        assert BinaryEncoder("eeg").encode([]) == b""

    def test_mixed_variant_rejected(self) -> None:
        with pytest.raises(EncodingError) as exc_info:
            BinaryEncoder("eeg").encode([PPGSample(1, 2.0, 3.0)])
        assert "ppg sample written to a eeg container" in exc_info.value.message

    def test_float32_overflow(self) -> None:
        with pytest.raises(EncodingError) as exc_info:
            BinaryEncoder("ppg").encode([PPGSample(1, 1e300, 0.0)])
        assert "(sample 0)" in exc_info.value.message

    def test_processed_nan_rejected(self) -> None:
        with pytest.raises(EncodingError):
            BinaryEncoder("processed").encode([ProcessedSample({"x": float("nan")})])


class TestBuildEncoder:
    def test_each_format(self) -> None:
        assert isinstance(build_encoder("json", "eeg"), JsonLinesEncoder)
        assert isinstance(build_encoder("csv", "eeg"), CsvEncoder)
        encoder = build_encoder(OutputFormat.BINARY, "acc")
        assert isinstance(encoder, BinaryEncoder)
        assert encoder.data_type is DataType.ACC

    def test_unknown(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            build_encoder("parquet", "eeg")
