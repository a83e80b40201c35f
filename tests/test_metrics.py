"""Tests for formatting helpers."""

import pytest

from common.metrics import (
    calculate_eta,
    calculate_speed,
    compression_ratio,
    format_bytes,
    format_duration,
)


@pytest.mark.parametrize("size, expected", [
    (0, "0 B"),
    (-5, "0 B"),
    (512, "512 B"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (10 * 1024 * 1024, "10 MB"),
    (3 * 1024 ** 3, "3 GB"),
    (2048 * 1024 ** 4, "2048 TB"),
])
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


@pytest.mark.parametrize("ms, expected", [
    (0, "0ms"),
    (850.7, "850ms"),
    (1500, "1.5s"),
    (120_000, "2.0m"),
    (4_320_000, "1.2h"),
])
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


def test_compression_ratio():
    assert compression_ratio(1000, 250) == 75
    assert compression_ratio(0, 10) == 0
    assert compression_ratio(100, 150) == -50


def test_calculate_speed():
    assert calculate_speed(2048, 1000) == "2 KB/s"
    assert calculate_speed(2048, 0) == "0 B/s"


def test_calculate_eta():
    assert calculate_eta(50, 100, 25) == "2.0s"
    assert calculate_eta(100, 100, 25) == "0ms"
    assert calculate_eta(10, 100, 0) == "0ms"
