"""LinkBand sensor data writer: streaming EEG/PPG/ACC recordings to JSONL, CSV and LNKB files."""

__version__ = "0.1.0"
