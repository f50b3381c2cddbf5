"""Shared fixtures for writer tests."""

from __future__ import annotations

import pytest

from lsdw.models import ACCSample, EEGSample, PPGSample, ProcessedSample

# Fixed creation time used for container headers in tests
CREATED_MS = 1_700_000_000_000


@pytest.fixture
def clock():
    """Clock returning a fixed creation timestamp."""
    return lambda: CREATED_MS


@pytest.fixture
def eeg_samples() -> list[EEGSample]:
    # Values are exact in float32
    return [
        EEGSample(1000, 10.5, -3.25, 0.5),
        EEGSample(1004, 11.0, -2.75, 0.75),
    ]


@pytest.fixture
def ppg_samples() -> list[PPGSample]:
    return [
        PPGSample(2000, 51234.0, 60321.0),
        PPGSample(2040, 51240.0, 60318.0),
        PPGSample(2080, 51250.5, 60300.25),
    ]


@pytest.fixture
def acc_samples() -> list[ACCSample]:
    return [
        ACCSample(3000, 0.0, 0.0, 1.0, 1.0),
        ACCSample(3040, 3.0, 4.0, 0.0, 5.0),
    ]


@pytest.fixture
def processed_samples() -> list[ProcessedSample]:
    return [
        ProcessedSample({"timestamp": 5000, "alpha": 0.25, "state": "focused"}),
        ProcessedSample({"timestamp": 6000, "alpha": 0.5, "bands": [1, 2, 3]}),
    ]
