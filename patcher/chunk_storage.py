"""Reads and writes chunk byte ranges and manages scratch chunk files on disk."""

from pathlib import Path
from typing import BinaryIO, Iterator, List, Tuple

from common.constants import CHUNK_EXTENSION, STREAM_PIECE_SIZE


def scratch_chunk_path(scratch_dir: str, label: str, index: int) -> str:
    """
    Get the scratch file path for one side of a chunk.

    Args:
        scratch_dir: Directory owned by the running operation
        label: Role of the file ("old", "new", "patch", "out")
        index: Chunk index

    Returns:
        String path inside scratch_dir
    """
    return str(Path(scratch_dir) / f"{label}-{index:08d}{CHUNK_EXTENSION}")


def read_range_streaming(
    path: str,
    offset: int,
    length: int,
    piece_size: int = STREAM_PIECE_SIZE
) -> Iterator[bytes]:
    """
    Stream a byte range of a file in pieces.

    Args:
        path: Source file
        offset: First byte of the range
        length: Number of bytes in the range
        piece_size: Size of each piece in bytes (default 64KB)

    Yields:
        Range data pieces

    Raises:
        EOFError: If the file ends before the range does
    """
    remaining = length
    with open(path, 'rb') as f:
        f.seek(offset)
        while remaining > 0:
            piece = f.read(min(piece_size, remaining))
            if not piece:
                raise EOFError(f"{path} ended {remaining} bytes before range [{offset}, {offset + length})")
            remaining -= len(piece)
            yield piece


def copy_range(path: str, offset: int, length: int, dest: BinaryIO) -> int:
    """
    Append a byte range of a file to an open binary stream.

    Returns:
        Number of bytes copied
    """
    copied = 0
    for piece in read_range_streaming(path, offset, length):
        dest.write(piece)
        copied += len(piece)
    return copied


def extract_range(path: str, offset: int, length: int, dest_path: str) -> str:
    """
    Write a byte range of a file to its own file.

    Returns:
        String path to written file
    """
    with open(dest_path, 'wb') as dest:
        copy_range(path, offset, length, dest)
    return dest_path


def extract_ranges(ranges: List[Tuple[str, int, int, str]]) -> List[str]:
    """
    Extract several (path, offset, length, dest_path) ranges in one call.

    Returns:
        String paths to written files, in the given order
    """
    return [extract_range(path, offset, length, dest_path) for path, offset, length, dest_path in ranges]


def delete_file(path: str) -> bool:
    """
    Delete a file from disk.

    Returns:
        True if file was deleted, False if it didn't exist
    """
    filepath = Path(path)
    if filepath.exists():
        filepath.unlink()
        return True
    return False
