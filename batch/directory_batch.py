"""
Directory batches.

create: every regular file of new_dir is diffed against the like-named file of
old_dir into patches_dir/<name>.xdelta.
apply: every regular file of patches_dir is applied to the like-named file of
old_dir (extension stripped) into output_dir/<name>.

All items go through the same PatchGenerator, so its subprocess semaphore is
shared by the whole batch.
"""

import logging
import os
from typing import List

from common.constants import MAX_CONCURRENT_SUBPROCESSES, PATCH_EXTENSION
from common.exceptions import MissingInputError
from patcher.file_validation import validate_directory_exists
from patcher.results import BatchOutcome
from batch.scheduler import BatchPair, run_batch

logger = logging.getLogger(__name__)


def _list_files(directory: str) -> List[str]:
    return sorted(
        name for name in os.listdir(directory)
        if os.path.isfile(os.path.join(directory, name))
    )


def _require_directory(directory: str, role: str) -> None:
    if not validate_directory_exists(directory):
        raise MissingInputError(f"{role} not found: {directory}")


def plan_create_batch(old_dir: str, new_dir: str, patches_dir: str) -> List[BatchPair]:
    return [
        BatchPair(
            name=name,
            inputs=(os.path.join(old_dir, name), os.path.join(new_dir, name)),
            output=os.path.join(patches_dir, name + PATCH_EXTENSION),
        )
        for name in _list_files(new_dir)
    ]


def plan_apply_batch(old_dir: str, patches_dir: str, output_dir: str) -> List[BatchPair]:
    pairs = []
    for patch_name in _list_files(patches_dir):
        name = patch_name[:-len(PATCH_EXTENSION)] if patch_name.endswith(PATCH_EXTENSION) else patch_name
        pairs.append(BatchPair(
            name=name,
            inputs=(os.path.join(old_dir, name), os.path.join(patches_dir, patch_name)),
            output=os.path.join(output_dir, name),
        ))
    return pairs


async def create_batch_patches(
    generator,
    old_dir: str,
    new_dir: str,
    patches_dir: str,
    max_parallel: int = MAX_CONCURRENT_SUBPROCESSES,
    **overrides,
) -> List[BatchOutcome]:
    """
    Create one patch per file of new_dir.

    Args:
        generator: PatchGenerator used for every item
        old_dir: Directory with the original files
        new_dir: Directory with the new files
        patches_dir: Output directory, created if needed
        max_parallel: Number of items processed at once
        **overrides: Option values passed to every create_patch call

    Returns:
        One outcome per file of new_dir; files without an original are SKIPPED

    Raises:
        MissingInputError: If old_dir or new_dir does not exist
    """
    _require_directory(old_dir, "Original directory")
    _require_directory(new_dir, "New directory")
    os.makedirs(patches_dir, exist_ok=True)

    pairs = plan_create_batch(old_dir, new_dir, patches_dir)
    logger.info(f"Batch create: {len(pairs)} files from {new_dir} into {patches_dir}")

    async def create(pair: BatchPair):
        old_file, new_file = pair.inputs
        return await generator.create_patch(old_file, new_file, pair.output, **overrides)

    return await run_batch(pairs, create, max_parallel)


async def apply_batch_patches(
    generator,
    old_dir: str,
    patches_dir: str,
    output_dir: str,
    max_parallel: int = MAX_CONCURRENT_SUBPROCESSES,
    **overrides,
) -> List[BatchOutcome]:
    """
    Apply every patch of patches_dir to its original in old_dir.

    Returns:
        One outcome per patch file; patches without an original are SKIPPED

    Raises:
        MissingInputError: If old_dir or patches_dir does not exist
    """
    _require_directory(old_dir, "Original directory")
    _require_directory(patches_dir, "Patches directory")
    os.makedirs(output_dir, exist_ok=True)

    pairs = plan_apply_batch(old_dir, patches_dir, output_dir)
    logger.info(f"Batch apply: {len(pairs)} patches from {patches_dir} into {output_dir}")

    async def apply(pair: BatchPair):
        old_file, patch_file = pair.inputs
        return await generator.apply_patch(old_file, patch_file, pair.output, **overrides)

    return await run_batch(pairs, apply, max_parallel)
