"""Inspection of patch files. These helpers report problems in the result and never raise."""

import logging
import os

from common.exceptions import CorruptContainerError
from common.metrics import format_bytes
from common.types import ChunkKind
from patcher.container import PatchContainerReader, is_container
from patcher.results import PatchAnalysis, PatchComparison

logger = logging.getLogger(__name__)

# VCDIFF (RFC 3284) magic written by xdelta3
VCDIFF_MAGIC = b"\xd6\xc3\xc4"

FORMAT_CHUNKED = "chunked"
FORMAT_VCDIFF = "xdelta"
FORMAT_UNKNOWN = "unknown"


def detect_format(patch_file: str) -> str:
    if is_container(patch_file):
        return FORMAT_CHUNKED
    with open(patch_file, 'rb') as f:
        lead = f.read(len(VCDIFF_MAGIC))
    return FORMAT_VCDIFF if lead == VCDIFF_MAGIC else FORMAT_UNKNOWN


def get_patch_info(patch_file: str) -> PatchAnalysis:
    """
    Basic information about a patch file: size and format.

    Args:
        patch_file: Path to the patch

    Returns:
        PatchAnalysis without per-chunk details
    """
    try:
        size = os.stat(patch_file).st_size
        patch_format = detect_format(patch_file)
    except OSError as e:
        return PatchAnalysis(success=False, error=str(e))

    flags = ["chunked"] if patch_format == FORMAT_CHUNKED else []
    return PatchAnalysis(
        success=True,
        size=size,
        size_formatted=format_bytes(size),
        format=patch_format,
        flags=flags,
    )


def analyze_patch(patch_file: str) -> PatchAnalysis:
    """
    Analyze a patch file.

    Chunk containers are fully parsed, so a corrupt container is reported as
    a failed analysis.

    Args:
        patch_file: Path to the patch

    Returns:
        PatchAnalysis; for containers it includes the header values and the
        number of records of each kind
    """
    info = get_patch_info(patch_file)
    if not info.success or info.format != FORMAT_CHUNKED:
        return info

    try:
        container = PatchContainerReader().read(patch_file)
    except (OSError, CorruptContainerError) as e:
        logger.warning(f"Cannot analyze {patch_file}: {e}")
        return PatchAnalysis(
            success=False,
            error=str(e),
            size=info.size,
            size_formatted=info.size_formatted,
            format=info.format,
        )

    kinds = [record.kind for record in container.records]
    flags = list(info.flags)
    if container.header.old_size == 0:
        flags.append("from-empty")
    if container.header.new_size == 0:
        flags.append("to-empty")

    return PatchAnalysis(
        success=True,
        size=info.size,
        size_formatted=info.size_formatted,
        format=info.format,
        chunk_size=container.header.chunk_size,
        chunk_count=container.header.chunk_count,
        old_size=container.header.old_size,
        new_size=container.header.new_size,
        diffed_chunks=kinds.count(ChunkKind.DIFFED),
        inserted_chunks=kinds.count(ChunkKind.INSERTED_WHOLE),
        deleted_chunks=kinds.count(ChunkKind.DELETED_WHOLE),
        flags=flags,
    )


def compare_patches(first_patch: str, second_patch: str) -> PatchComparison:
    """
    Compare two patch files by size.

    Similarity is 100 for equal sizes and falls linearly with the size
    difference relative to the larger patch.
    """
    try:
        first_size = os.stat(first_patch).st_size
        second_size = os.stat(second_patch).st_size
    except OSError as e:
        return PatchComparison(success=False, error=str(e))

    difference = abs(first_size - second_size)
    largest = max(first_size, second_size)
    similarity = 100.0 if difference == 0 else max(0.0, 100.0 - difference / largest * 100)

    return PatchComparison(
        success=True,
        size_difference=difference,
        size_difference_formatted=format_bytes(difference),
        similarity=round(similarity, 2),
    )
