"""Command handler functions for CLI operations."""

import os
from typing import List, Optional

from batch.directory_batch import apply_batch_patches, create_batch_patches
from cli.config import Config
from cli.models import (
    ApplyCommand,
    BatchApplyCommand,
    BatchCreateCommand,
    CommandOutput,
    CreateCommand,
    InfoCommand,
    VerifyCommand,
)
from cli.utils import ProgressLinePrinter
from common.exceptions import PatchError
from common.logging_config import get_logger
from common.types import BatchStatus
from patcher.analyzer import analyze_patch, compare_patches
from patcher.generator import PatchGenerator
from patcher.options import GeneratorOptions
from patcher.results import BatchOutcome, OperationResult

logger = get_logger(__name__)


_config: Optional[Config] = None
_generator: Optional[PatchGenerator] = None


def get_config() -> Config:
    """
    Get or create global Config instance.

    Returns:
        Config instance backed by ~/.chunkdelta/config.json
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_generator(**overrides) -> PatchGenerator:
    """
    Get or create global PatchGenerator instance.

    The generator must be created inside the running event loop that uses it.

    Args:
        **overrides: Option values applied on top of the config file; passing
            any replaces the cached generator

    Returns:
        PatchGenerator instance

    Raises:
        InvalidConfigurationError: If the config file holds invalid values
    """
    global _generator
    if _generator is None or overrides:
        logger.debug("Creating new PatchGenerator instance")
        options = GeneratorOptions.build(**get_config().get_generator_options())
        _generator = PatchGenerator(options, **overrides)
    return _generator


def _describe_failure(result: OperationResult) -> str:
    kind = result.error_kind.value if result.error_kind else "error"
    return f"Error [{kind}]: {result.error}"


def _verify_override(verify: bool) -> Optional[bool]:
    return None if verify else False


async def handle_create(cmd: CreateCommand, generator: Optional[PatchGenerator] = None) -> CommandOutput:
    """
    Handle 'create' command.

    Args:
        cmd: CreateCommand with the three file paths and options
        generator: Optional PatchGenerator for dependency injection (testing)

    Returns:
        CommandOutput with the patch summary or the error
    """
    logger.info(f"Executing create command: {cmd.old_file} -> {cmd.new_file} into {cmd.patch_file}")
    if generator is None:
        generator = get_generator()

    sink = ProgressLinePrinter(os.path.basename(cmd.new_file))
    overrides = dict(compression=cmd.compression, timeout=cmd.timeout, verify=_verify_override(cmd.verify))
    if cmd.chunked:
        result = await generator.create_patch_with_chunks(
            cmd.old_file, cmd.new_file, cmd.patch_file, chunk_size=cmd.chunk_size, sink=sink, **overrides
        )
    else:
        result = await generator.create_patch(cmd.old_file, cmd.new_file, cmd.patch_file, sink=sink, **overrides)

    if not result.success:
        return CommandOutput(success=False, message=_describe_failure(result))

    metrics = result.metrics
    lines = [
        f"Patch created: {cmd.patch_file}",
        f"  Size:        {result.patch_file.size_formatted} ({metrics.compression_ratio}% of the new file)",
        f"  Tier:        {metrics.tier}" + (f", {metrics.chunk_count} chunks" if metrics.chunk_count else ""),
        f"  Duration:    {metrics.duration_formatted}",
    ]
    return CommandOutput(success=True, message="\n".join(lines))


async def handle_apply(cmd: ApplyCommand, generator: Optional[PatchGenerator] = None) -> CommandOutput:
    """
    Handle 'apply' command.

    Args:
        cmd: ApplyCommand with old file, patch and output paths
        generator: Optional PatchGenerator for dependency injection (testing)

    Returns:
        CommandOutput with the output summary or the error
    """
    logger.info(f"Executing apply command: {cmd.patch_file} on {cmd.old_file} into {cmd.output_file}")
    if generator is None:
        generator = get_generator()

    sink = ProgressLinePrinter(os.path.basename(cmd.output_file))
    result = await generator.apply_patch(
        cmd.old_file, cmd.patch_file, cmd.output_file,
        sink=sink, timeout=cmd.timeout, verify=_verify_override(cmd.verify),
    )
    if not result.success:
        return CommandOutput(success=False, message=_describe_failure(result))
    return CommandOutput(
        success=True,
        message=(
            f"Patch applied: {cmd.output_file} "
            f"({result.new_file.size_formatted}, {result.metrics.duration_formatted})"
        ),
    )


async def handle_verify(cmd: VerifyCommand, generator: Optional[PatchGenerator] = None) -> CommandOutput:
    """
    Handle 'verify' command.

    Args:
        cmd: VerifyCommand with old file, patch and expected file paths
        generator: Optional PatchGenerator for dependency injection (testing)

    Returns:
        CommandOutput; success only if the patch reproduces the expected file
    """
    if generator is None:
        generator = get_generator()

    sink = ProgressLinePrinter(os.path.basename(cmd.expected_file))
    result = await generator.verify_patch(
        cmd.old_file, cmd.patch_file, cmd.expected_file, sink=sink, timeout=cmd.timeout
    )
    if not result.is_valid:
        return CommandOutput(success=False, message=_describe_failure(result))
    return CommandOutput(
        success=True,
        message=f"Patch is valid: {cmd.patch_file} reproduces {cmd.expected_file}",
    )


def format_batch_outcomes(outcomes: List[BatchOutcome]) -> str:
    """
    Format batch outcomes as one line per item followed by a summary.

    Args:
        outcomes: Outcomes in batch order

    Returns:
        Multi-line report
    """
    lines = []
    for outcome in outcomes:
        line = f"  [{outcome.status.value.upper():7}] {outcome.file}"
        if outcome.error:
            line += f": {outcome.error}"
        lines.append(line)

    counts = {status: 0 for status in BatchStatus}
    for outcome in outcomes:
        counts[outcome.status] += 1
    lines.append(
        f"{len(outcomes)} files: {counts[BatchStatus.SUCCESS]} succeeded, "
        f"{counts[BatchStatus.ERROR]} failed, {counts[BatchStatus.SKIPPED]} skipped"
    )
    return "\n".join(lines)


def _batch_output(outcomes: List[BatchOutcome]) -> CommandOutput:
    success = all(outcome.status != BatchStatus.ERROR for outcome in outcomes)
    return CommandOutput(success=success, message=format_batch_outcomes(outcomes))


async def handle_batch_create(
    cmd: BatchCreateCommand,
    generator: Optional[PatchGenerator] = None,
    config: Optional[Config] = None,
) -> CommandOutput:
    """
    Handle 'batch-create' command.

    Args:
        cmd: BatchCreateCommand with the three directories and options
        generator: Optional PatchGenerator for dependency injection (testing)
        config: Optional Config supplying the default parallelism

    Returns:
        CommandOutput listing every file; fails if any item failed
    """
    logger.info(f"Executing batch-create command: {cmd.old_dir} + {cmd.new_dir} into {cmd.patches_dir}")
    if generator is None:
        generator = get_generator()
    parallel = cmd.parallel or (config or get_config()).get_max_parallel()

    try:
        outcomes = await create_batch_patches(
            generator, cmd.old_dir, cmd.new_dir, cmd.patches_dir, parallel,
            compression=cmd.compression, chunk_size=cmd.chunk_size, timeout=cmd.timeout,
        )
    except PatchError as e:
        return CommandOutput(success=False, message=f"Error [{e.kind.value}]: {e}")
    return _batch_output(outcomes)


async def handle_batch_apply(
    cmd: BatchApplyCommand,
    generator: Optional[PatchGenerator] = None,
    config: Optional[Config] = None,
) -> CommandOutput:
    """
    Handle 'batch-apply' command.

    Args:
        cmd: BatchApplyCommand with the three directories and options
        generator: Optional PatchGenerator for dependency injection (testing)
        config: Optional Config supplying the default parallelism

    Returns:
        CommandOutput listing every patch; fails if any item failed
    """
    logger.info(f"Executing batch-apply command: {cmd.patches_dir} on {cmd.old_dir} into {cmd.output_dir}")
    if generator is None:
        generator = get_generator()
    parallel = cmd.parallel or (config or get_config()).get_max_parallel()

    try:
        outcomes = await apply_batch_patches(
            generator, cmd.old_dir, cmd.patches_dir, cmd.output_dir, parallel, timeout=cmd.timeout,
        )
    except PatchError as e:
        return CommandOutput(success=False, message=f"Error [{e.kind.value}]: {e}")
    return _batch_output(outcomes)


async def handle_info(cmd: InfoCommand) -> CommandOutput:
    """
    Handle 'info' command.

    Args:
        cmd: InfoCommand with the patch path and an optional second patch

    Returns:
        CommandOutput with the analysis
    """
    analysis = analyze_patch(cmd.patch_file)
    if not analysis.success:
        return CommandOutput(success=False, message=f"Error: {analysis.error}")

    lines = [
        f"Patch: {cmd.patch_file}",
        f"  Size:        {analysis.size_formatted}",
        f"  Format:      {analysis.format}",
    ]
    if analysis.chunk_count is not None:
        lines += [
            f"  Chunk size:  {analysis.chunk_size}",
            f"  Chunks:      {analysis.chunk_count} "
            f"({analysis.diffed_chunks} diffed, {analysis.inserted_chunks} inserted, "
            f"{analysis.deleted_chunks} deleted)",
            f"  Sizes:       {analysis.old_size} -> {analysis.new_size} bytes",
        ]
    if analysis.flags:
        lines.append(f"  Flags:       {', '.join(analysis.flags)}")

    if cmd.compare_with:
        comparison = compare_patches(cmd.patch_file, cmd.compare_with)
        if not comparison.success:
            return CommandOutput(success=False, message=f"Error: {comparison.error}")
        lines.append(
            f"Compared with {cmd.compare_with}: {comparison.size_difference_formatted} difference, "
            f"{comparison.similarity}% similar"
        )

    return CommandOutput(success=True, message="\n".join(lines))
