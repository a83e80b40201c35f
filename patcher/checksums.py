"""Provides SHA-256 checksum calculation and comparison helpers."""

import hashlib

from common.constants import STREAM_PIECE_SIZE


def compute_checksum(data: bytes) -> str:
    """
    Compute SHA-256 checksum for given data.

    Args:
        data: Bytes to compute checksum for

    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def compute_file_checksum(path: str, piece_size: int = STREAM_PIECE_SIZE) -> str:
    """
    Compute SHA-256 checksum of a file, reading it in pieces.

    Args:
        path: File to hash
        piece_size: Read size in bytes

    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    calculator = IncrementalChecksumCalculator()
    with open(path, 'rb') as f:
        while True:
            piece = f.read(piece_size)
            if not piece:
                break
            calculator.update(piece)
    return calculator.finalize()


def files_match(first: str, second: str) -> bool:
    """
    Byte-exact comparison of two files via their digests.
    """
    return compute_file_checksum(first) == compute_file_checksum(second)


class IncrementalChecksumCalculator:
    """
    Calculate SHA-256 checksum incrementally for streaming data.

    Usage:
        calculator = IncrementalChecksumCalculator()
        calculator.update(piece1)
        calculator.update(piece2)
        final_checksum = calculator.finalize()
    """

    def __init__(self):
        """Initialize a new incremental checksum calculator."""
        self._hasher = hashlib.sha256()
        self._finalized = False

    def update(self, data: bytes) -> None:
        """
        Update checksum with new data.

        Args:
            data: Bytes to add to checksum calculation
        """
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)

    def finalize(self) -> str:
        """
        Finalize checksum calculation and return result.

        Returns:
            Hexadecimal string representation of SHA-256 hash
        """
        self._finalized = True
        return self._hasher.hexdigest()
