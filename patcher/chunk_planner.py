"""Splits files into fixed-size chunk descriptors and pairs old/new plans by index."""

import os
from typing import List, Optional, Tuple

from common.constants import MIB
from common.exceptions import InvalidConfigurationError
from common.types import ChunkDescriptor

AlignedChunk = Tuple[int, Optional[ChunkDescriptor], Optional[ChunkDescriptor]]


def plan(file_size_bytes: int, chunk_size_bytes: int) -> List[ChunkDescriptor]:
    """
    Produce the ordered chunk descriptors covering a file.

    Args:
        file_size_bytes: Total file size in bytes
        chunk_size_bytes: Size of every chunk except possibly the last

    Returns:
        Contiguous, non-overlapping descriptors covering [0, file_size_bytes);
        empty for an empty file

    Raises:
        InvalidConfigurationError: If chunk_size_bytes <= 0 or the size is negative
    """
    if chunk_size_bytes <= 0:
        raise InvalidConfigurationError(f"Chunk size must be > 0, got {chunk_size_bytes}")
    if file_size_bytes < 0:
        raise InvalidConfigurationError(f"File size must be >= 0, got {file_size_bytes}")

    chunks = []
    index = 0
    start = 0
    while start < file_size_bytes:
        end = min(start + chunk_size_bytes, file_size_bytes)
        chunks.append(ChunkDescriptor(
            index=index,
            start_byte=start,
            end_byte=end,
            size_bytes=end - start,
        ))
        start = end
        index += 1
    return chunks


def plan_file(path: str, chunk_size_bytes: int) -> List[ChunkDescriptor]:
    """Plan chunks for a file on disk."""
    return plan(os.stat(path).st_size, chunk_size_bytes)


def align(
    old_plan: List[ChunkDescriptor],
    new_plan: List[ChunkDescriptor]
) -> List[AlignedChunk]:
    """
    Pair two plans by chunk index.

    Indices present on only one side come back with None on the other side;
    byte ranges are never compared across the two files.

    Returns:
        (index, old_chunk_or_None, new_chunk_or_None) for every index up to the longer plan
    """
    count = max(len(old_plan), len(new_plan))
    aligned = []
    for index in range(count):
        old_chunk = old_plan[index] if index < len(old_plan) else None
        new_chunk = new_plan[index] if index < len(new_plan) else None
        aligned.append((index, old_chunk, new_chunk))
    return aligned


def optimal_chunk_size(file_size_bytes: int) -> int:
    if file_size_bytes < 100 * MIB:
        return 10 * MIB
    if file_size_bytes < 1024 * MIB:
        return 50 * MIB
    return 100 * MIB


def effective_chunk_size(chunk_size_bytes: int, max_chunk_size_bytes: int) -> int:
    """
    Clamp a configured chunk size to the configured maximum.
    """
    if chunk_size_bytes <= 0 or max_chunk_size_bytes <= 0:
        raise InvalidConfigurationError(
            f"Chunk sizes must be > 0, got chunk_size={chunk_size_bytes}, max={max_chunk_size_bytes}"
        )
    return min(chunk_size_bytes, max_chunk_size_bytes)
