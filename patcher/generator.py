"""
PatchGenerator: the top-level create/apply/verify operations.

Every operation returns a result model and never raises for expected failures
(missing inputs, unavailable tool, timeouts, corrupt containers); those are
reported as failed results with an ErrorKind. Small pairs are encoded with one
tool invocation and produce a plain tool patch; pairs whose profile asks for
chunking produce a chunk container, and apply picks the path from the magic.
"""

import asyncio
import dataclasses
import logging
import os
import tempfile
import time
from typing import Callable, List, Optional

from common.constants import SCRATCH_PREFIX, TEMP_EXTENSION
from common.exceptions import ErrorKind, PatchError, VerificationMismatchError
from common.metrics import compression_ratio, format_duration
from common.types import ContainerHeader, OptimizationProfile, PayloadRef, SizeTier, ToolCapability
from patcher.checksums import files_match
from patcher.chunk_planner import align, effective_chunk_size, plan
from patcher.chunk_storage import copy_range, delete_file
from patcher.container import PatchContainerReader, PatchContainerWriter, is_container
from patcher.delta_tool import DeltaTool
from patcher.file_validation import get_file_info, require_file, require_writable
from patcher.options import GeneratorOptions
from patcher.progress import (
    APPLY_PHASES,
    CREATE_PHASES,
    FanOutSink,
    Phase,
    ProgressEstimator,
    ProgressSink,
    SyntheticTicker,
)
from patcher.results import ApplyResult, FileInfo, PatchMetrics, PatchResult, TimingMetrics, VerifyResult
from patcher.segment_encoder import SegmentDecoder, SegmentEncoder, run_blocking
from patcher.size_classifier import classify, profile_for

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _concatenate(outputs: List[Optional[PayloadRef]], destination: str) -> int:
    written = 0
    with open(destination, 'wb') as out:
        for payload in outputs:
            if payload is not None and payload.length:
                written += copy_range(payload.path, payload.offset, payload.length, out)
    return written


class PatchGenerator:
    """
    Creates, applies and verifies patches with an external delta tool.

    The tool is probed at most once successfully per instance; the resulting
    ToolCapability is reused by every later operation.
    """

    def __init__(
        self,
        options: Optional[GeneratorOptions] = None,
        sink: Optional[ProgressSink] = None,
        slots: Optional[asyncio.Semaphore] = None,
        **overrides,
    ):
        """
        Initialize the generator.

        Args:
            options: Base options (defaults when omitted)
            sink: Receives progress and results of every operation
            slots: Subprocess semaphore to share with other generators
            **overrides: Individual option values applied on top of options

        Raises:
            InvalidConfigurationError: If the options are invalid
        """
        self.options = (options or GeneratorOptions()).merged(**overrides)
        self.sink = sink
        self.slots = slots or asyncio.Semaphore(self.options.max_concurrency)
        self.tool = DeltaTool(self.options.tool_path, slots=self.slots, probe_timeout=self.options.probe_timeout)
        self._capability: Optional[ToolCapability] = None
        self._probe_lock: Optional[asyncio.Lock] = None
        self._writer = PatchContainerWriter()
        self._reader = PatchContainerReader()

    @staticmethod
    def get_file_info(file_path: str) -> FileInfo:
        return get_file_info(file_path)

    async def check_tool(self) -> ToolCapability:
        """
        Probe the delta tool, reusing the capability of an earlier successful probe.

        Concurrent callers wait for a probe already in flight instead of
        starting their own.

        Raises:
            ToolUnavailableError: If the tool cannot be found or does not answer
        """
        if self._capability is not None:
            return self._capability
        if self._probe_lock is None:
            self._probe_lock = asyncio.Lock()
        async with self._probe_lock:
            if self._capability is None:
                self._capability = await self.tool.probe()
        return self._capability

    async def create_patch(
        self,
        old_file: str,
        new_file: str,
        patch_file: str,
        sink: Optional[ProgressSink] = None,
        **overrides,
    ) -> PatchResult:
        """
        Create a patch turning old_file into new_file.

        Args:
            old_file: Original file path
            new_file: New file path
            patch_file: Output patch file path
            sink: Extra sink for this call only
            **overrides: Option values for this call (compression, timeout, ...)

        Returns:
            PatchResult; on failure no file is left at patch_file
        """
        return await self._create(old_file, new_file, patch_file, sink, overrides)

    async def create_patch_with_chunks(
        self,
        old_file: str,
        new_file: str,
        patch_file: str,
        chunk_size: Optional[int] = None,
        sink: Optional[ProgressSink] = None,
        **overrides,
    ) -> PatchResult:
        """
        Create a chunk container regardless of the size tier.

        Args:
            chunk_size: Chunk size in bytes (defaults to the configured chunk size)
        """
        if chunk_size is not None:
            overrides["chunk_size"] = chunk_size
        return await self._create(old_file, new_file, patch_file, sink, overrides, force_chunking=True)

    async def _create(
        self,
        old_file: str,
        new_file: str,
        patch_file: str,
        sink: Optional[ProgressSink],
        overrides: dict,
        force_chunking: bool = False,
    ) -> PatchResult:
        started = time.monotonic()
        sink = FanOutSink(self.sink, sink)
        estimator = ProgressEstimator(sink, CREATE_PHASES)
        logger.info(f"Creating patch {patch_file} from {old_file} -> {new_file}")

        try:
            estimator.enter(Phase.VALIDATING, "Validating input files...")
            options = self.options.merged(**overrides)
            require_file(old_file, "Original file")
            require_file(new_file, "New file")
            require_writable(patch_file, "Patch file")

            old_size = os.stat(old_file).st_size
            new_size = os.stat(new_file).st_size
            tier = classify(max(old_size, new_size), options.thresholds)
            profile = self._profile(tier, options, force_chunking)
            estimator.complete_phase()

            estimator.enter(Phase.CHECKING_TOOL, "Checking delta tool...")
            tool, capability = await self._tool_for(options)
            estimator.complete_phase()

            if profile.use_chunking:
                chunk_count = await self._create_chunked(
                    tool, capability, old_file, new_file, patch_file,
                    old_size, new_size, profile, options, estimator,
                )
            else:
                chunk_count = 0
                await self._create_standard(
                    tool, capability, old_file, new_file, patch_file,
                    new_size, profile, options, estimator,
                )

            patch_info = get_file_info(patch_file)
            duration = _elapsed_ms(started)
            result = PatchResult(
                success=True,
                patch_file=patch_info,
                metrics=PatchMetrics(
                    duration_ms=duration,
                    duration_formatted=format_duration(duration),
                    compression_ratio=compression_ratio(new_size, patch_info.size),
                    original_size=old_size,
                    new_size=new_size,
                    patch_size=patch_info.size,
                    is_large_file=tier > SizeTier.NORMAL,
                    tier=tier.name.lower(),
                    chunk_count=chunk_count,
                ),
            )
            estimator.finish("Patch created successfully!", current=new_size, total=new_size)
            logger.info(
                f"Patch created: {patch_file} [{patch_info.size} bytes, tier={tier.name.lower()}, "
                f"chunks={chunk_count}, {result.metrics.duration_formatted}]"
            )
            sink.on_result(result)
            return result

        except PatchError as e:
            return self._failed(e, e.kind, started, estimator, sink, "create patch", self._failed_patch)
        except Exception as e:
            logger.error(f"Unexpected error creating patch {patch_file}: {e}", exc_info=True)
            return self._failed(e, ErrorKind.INTERNAL, started, estimator, sink, "create patch", self._failed_patch)

    @staticmethod
    def _profile(tier: SizeTier, options: GeneratorOptions, force_chunking: bool) -> OptimizationProfile:
        profile = profile_for(tier, options.compression, options.enable_chunk_processing)
        if not options.verify and not profile.skip_verification:
            profile = dataclasses.replace(profile, skip_verification=True)
        if force_chunking and not profile.use_chunking:
            profile = dataclasses.replace(profile, use_chunking=True)
        return profile

    async def _tool_for(self, options: GeneratorOptions):
        if options.tool_path == self.options.tool_path:
            return self.tool, await self.check_tool()
        tool = DeltaTool(options.tool_path, slots=self.slots, probe_timeout=options.probe_timeout)
        return tool, await tool.probe()

    async def _create_standard(
        self,
        tool: DeltaTool,
        capability: ToolCapability,
        old_file: str,
        new_file: str,
        patch_file: str,
        new_size: int,
        profile: OptimizationProfile,
        options: GeneratorOptions,
        estimator: ProgressEstimator,
    ) -> None:
        estimator.enter(Phase.PLANNING, "Preparing single-pass patch...")
        estimator.complete_phase()

        temp_path = patch_file + TEMP_EXTENSION
        try:
            estimator.enter(Phase.ENCODING, "Creating patch...", current=0, total=new_size)
            async with SyntheticTicker(estimator):
                await tool.encode(capability, old_file, new_file, temp_path, profile, options.timeout)
            estimator.complete_phase()

            estimator.enter(Phase.COMBINING, "Finalizing patch...")
            os.replace(temp_path, patch_file)
            estimator.complete_phase()
        finally:
            delete_file(temp_path)

    async def _create_chunked(
        self,
        tool: DeltaTool,
        capability: ToolCapability,
        old_file: str,
        new_file: str,
        patch_file: str,
        old_size: int,
        new_size: int,
        profile: OptimizationProfile,
        options: GeneratorOptions,
        estimator: ProgressEstimator,
    ) -> int:
        estimator.enter(Phase.PLANNING, "Planning chunks...")
        chunk_size = effective_chunk_size(options.chunk_size, options.max_chunk_size)
        aligned = align(plan(old_size, chunk_size), plan(new_size, chunk_size))
        total_bytes = sum((new or old).size_bytes for _, old, new in aligned)
        concurrency = options.chunk_concurrency(chunk_size)
        estimator.complete_phase(f"Planned {len(aligned)} chunks of {chunk_size} bytes")
        logger.info(f"Chunked encoding: {len(aligned)} chunks of {chunk_size} bytes, {concurrency} in flight")

        processed = 0

        def on_bytes(size: int) -> None:
            nonlocal processed
            processed += size
            estimator.advance_bytes(processed, total_bytes, "Encoding chunks...")

        with tempfile.TemporaryDirectory(
            prefix=SCRATCH_PREFIX, dir=options.scratch_dir, ignore_cleanup_errors=True
        ) as scratch_dir:
            estimator.enter(Phase.ENCODING, "Encoding chunks...", current=0, total=total_bytes)
            encoder = SegmentEncoder(tool, capability, scratch_dir, options.timeout, concurrency, on_bytes)
            records = await encoder.encode_all(old_file, new_file, aligned, profile)
            estimator.complete_phase()

            estimator.enter(Phase.COMBINING, "Combining chunk patches...")
            header = ContainerHeader(
                chunk_size=chunk_size,
                chunk_count=len(records),
                old_size=old_size,
                new_size=new_size,
            )
            await run_blocking(self._writer.write, header, records, patch_file)
            estimator.complete_phase()

        return len(records)

    async def apply_patch(
        self,
        old_file: str,
        patch_file: str,
        new_file: str,
        sink: Optional[ProgressSink] = None,
        **overrides,
    ) -> ApplyResult:
        """
        Apply a patch (plain tool patch or chunk container) to old_file.

        Args:
            old_file: Original file path
            patch_file: Patch file path
            new_file: Output file path
            sink: Extra sink for this call only
            **overrides: Option values for this call

        Returns:
            ApplyResult; on failure no file is left at new_file
        """
        started = time.monotonic()
        sink = FanOutSink(self.sink, sink)
        estimator = ProgressEstimator(sink, APPLY_PHASES)
        logger.info(f"Applying patch {patch_file} to {old_file} -> {new_file}")

        try:
            await self._apply_into(old_file, patch_file, new_file, overrides, estimator)

            new_info = get_file_info(new_file)
            result = ApplyResult(
                success=True,
                new_file=new_info,
                metrics=TimingMetrics.from_ms(_elapsed_ms(started)),
            )
            estimator.finish("Patch applied successfully!", current=new_info.size, total=new_info.size)
            logger.info(f"Patch applied: {new_file} [{new_info.size} bytes, {result.metrics.duration_formatted}]")
            sink.on_result(result)
            return result

        except PatchError as e:
            return self._failed(e, e.kind, started, estimator, sink, "apply patch", self._failed_apply)
        except Exception as e:
            logger.error(f"Unexpected error applying patch {patch_file}: {e}", exc_info=True)
            return self._failed(e, ErrorKind.INTERNAL, started, estimator, sink, "apply patch", self._failed_apply)

    async def _apply_into(
        self,
        old_file: str,
        patch_file: str,
        new_file: str,
        overrides: dict,
        estimator: ProgressEstimator,
        expected_file: Optional[str] = None,
    ) -> None:
        """
        Rebuild new_file from old_file and a patch, driving estimator up to the
        VERIFYING phase. Finishing the operation is left to the caller.

        Raises:
            PatchError: On any expected failure; nothing is left at new_file
        """
        estimator.enter(Phase.VALIDATING, "Validating input files...")
        options = self.options.merged(**overrides)
        require_file(old_file, "Original file")
        require_file(patch_file, "Patch file")
        if expected_file is not None:
            require_file(expected_file, "Expected file")
        require_writable(new_file, "Output file")

        old_size = os.stat(old_file).st_size
        container = self._reader.read(patch_file) if is_container(patch_file) else None
        old_plan = []
        if container is not None:
            if container.header.old_size != old_size:
                raise VerificationMismatchError(
                    f"Original file is {old_size} bytes but the patch was made from "
                    f"{container.header.old_size} bytes"
                )
            if container.header.chunk_count:
                old_plan = plan(old_size, container.header.chunk_size)
            SegmentDecoder.check_records(container.records, old_plan)

        tier = classify(old_size, options.thresholds)
        skip_verification = self._profile(tier, options, False).skip_verification
        estimator.complete_phase()

        estimator.enter(Phase.CHECKING_TOOL, "Checking delta tool...")
        tool, capability = await self._tool_for(options)
        estimator.complete_phase()

        temp_path = new_file + TEMP_EXTENSION
        try:
            if container is None:
                estimator.enter(Phase.DECODING, "Applying patch...")
                async with SyntheticTicker(estimator):
                    await tool.decode(capability, old_file, patch_file, temp_path, skip_verification, options.timeout)
            else:
                await self._apply_chunked(
                    tool, capability, old_file, temp_path, container, old_plan,
                    skip_verification, options, estimator,
                )
            estimator.complete_phase()

            estimator.enter(Phase.VERIFYING, "Checking result...")
            output_size = os.stat(temp_path).st_size
            if container is not None and output_size != container.header.new_size:
                raise VerificationMismatchError(
                    f"Reconstructed {output_size} bytes, patch expects {container.header.new_size}"
                )
            os.replace(temp_path, new_file)
        finally:
            delete_file(temp_path)

    async def _apply_chunked(
        self,
        tool: DeltaTool,
        capability: ToolCapability,
        old_file: str,
        output_path: str,
        container,
        old_plan,
        skip_verification: bool,
        options: GeneratorOptions,
        estimator: ProgressEstimator,
    ) -> None:
        total_bytes = container.header.new_size
        processed = 0

        def on_bytes(size: int) -> None:
            nonlocal processed
            processed += size
            estimator.advance_bytes(processed, total_bytes, "Decoding chunks...")

        chunk_size = container.header.chunk_size or 1
        with tempfile.TemporaryDirectory(
            prefix=SCRATCH_PREFIX, dir=options.scratch_dir, ignore_cleanup_errors=True
        ) as scratch_dir:
            estimator.enter(Phase.DECODING, "Decoding chunks...", current=0, total=total_bytes)
            decoder = SegmentDecoder(
                tool, capability, scratch_dir, options.timeout,
                options.chunk_concurrency(chunk_size), skip_verification, on_bytes,
            )
            outputs = await decoder.decode_all(container.records, old_file, old_plan)
            await run_blocking(_concatenate, outputs, output_path)

    async def verify_patch(
        self,
        old_file: str,
        patch_file: str,
        expected_file: str,
        sink: Optional[ProgressSink] = None,
        **overrides,
    ) -> VerifyResult:
        """
        Apply a patch to a scratch file and compare it byte for byte with expected_file.

        Sinks see one operation: progress reaches 100 and on_complete fires
        only when the contents match.

        Returns:
            VerifyResult; is_valid is True only when the contents match
        """
        started = time.monotonic()
        sink = FanOutSink(self.sink, sink)
        estimator = ProgressEstimator(sink, APPLY_PHASES)
        logger.info(f"Verifying patch {patch_file} against {expected_file}")

        try:
            with tempfile.TemporaryDirectory(
                prefix=SCRATCH_PREFIX, dir=self.options.scratch_dir, ignore_cleanup_errors=True
            ) as scratch_dir:
                output_path = os.path.join(scratch_dir, os.path.basename(expected_file) + ".verify")
                await self._apply_into(
                    old_file, patch_file, output_path, overrides, estimator, expected_file=expected_file
                )
                matches = await run_blocking(files_match, output_path, expected_file)
                if not matches:
                    raise VerificationMismatchError(
                        f"Patched output differs from expected file {expected_file}"
                    )

            result = VerifyResult(success=True, metrics=TimingMetrics.from_ms(_elapsed_ms(started)))
            estimator.finish("Patch verified successfully!")
            logger.info(f"Patch verified: {patch_file} reproduces {expected_file}")
            sink.on_result(result)
            return result

        except PatchError as e:
            return self._failed(e, e.kind, started, estimator, sink, "verify patch", self._failed_verify)
        except Exception as e:
            logger.error(f"Unexpected error verifying patch {patch_file}: {e}", exc_info=True)
            return self._failed(e, ErrorKind.INTERNAL, started, estimator, sink, "verify patch", self._failed_verify)

    def _failed(
        self,
        error: Exception,
        kind: ErrorKind,
        started: float,
        estimator: ProgressEstimator,
        sink: ProgressSink,
        action: str,
        build: Callable,
    ):
        message = str(error)
        logger.warning(f"Failed to {action}: {message}")
        estimator.fail(f"Failed to {action}: {message}")
        result = build(message, kind, _elapsed_ms(started))
        sink.on_result(result)
        return result

    @staticmethod
    def _failed_patch(message: str, kind: ErrorKind, duration_ms: float) -> PatchResult:
        return PatchResult(
            success=False,
            error=message,
            error_kind=kind,
            metrics=PatchMetrics.from_ms(duration_ms),
        )

    @staticmethod
    def _failed_apply(message: str, kind: ErrorKind, duration_ms: float) -> ApplyResult:
        return ApplyResult(
            success=False,
            error=message,
            error_kind=kind,
            metrics=TimingMetrics.from_ms(duration_ms),
        )

    @staticmethod
    def _failed_verify(message: str, kind: ErrorKind, duration_ms: float) -> VerifyResult:
        return VerifyResult(
            success=False,
            error=message,
            error_kind=kind,
            metrics=TimingMetrics.from_ms(duration_ms),
        )
