"""Tests for checksum helpers."""

import hashlib

import pytest

from patcher.checksums import (
    IncrementalChecksumCalculator,
    compute_checksum,
    compute_file_checksum,
    files_match,
)


def test_compute_checksum():
    assert compute_checksum(b"hello") == hashlib.sha256(b"hello").hexdigest()


def test_file_checksum_reads_in_pieces(tmp_path):
    path = tmp_path / "data.bin"
    data = bytes(range(256)) * 40
    path.write_bytes(data)

    assert compute_file_checksum(str(path), piece_size=7) == hashlib.sha256(data).hexdigest()


def test_incremental_matches_one_shot():
    calculator = IncrementalChecksumCalculator()
    calculator.update(b"hel")
    calculator.update(b"lo")

    assert calculator.finalize() == compute_checksum(b"hello")
    with pytest.raises(ValueError):
        calculator.update(b"more")


def test_files_match(tmp_path):
    a = tmp_path / "a"
    b = tmp_path / "b"
    c = tmp_path / "c"
    a.write_bytes(b"same")
    b.write_bytes(b"same")
    c.write_bytes(b"diff")

    assert files_match(str(a), str(b))
    assert not files_match(str(a), str(c))
