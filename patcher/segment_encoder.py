"""
Per-chunk encoding and decoding.

Chunk jobs run concurrently up to a per-operation limit, and each tool spawn
additionally holds a slot of the tool's shared semaphore. A chunked patch is
all-or-nothing: the first failing job cancels the rest, running subprocesses
are killed, and the error reported is the one with the lowest chunk index.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, List, Optional, Sequence

from common.exceptions import CorruptContainerError, SubprocessFailureError, with_chunk_index
from common.types import (
    ChunkDescriptor,
    ChunkKind,
    ChunkRecord,
    OptimizationProfile,
    PayloadRef,
    ToolCapability,
)
from patcher.chunk_planner import AlignedChunk
from patcher.chunk_storage import delete_file, extract_ranges, scratch_chunk_path
from patcher.delta_tool import DeltaTool

logger = logging.getLogger(__name__)

ByteCallback = Callable[[int], None]


async def run_blocking(func: Callable, *args):
    """
    Run a blocking call in the default executor.

    If the awaiting task is cancelled, the worker thread is waited for before
    the cancellation propagates, so the call never outlives its scratch files.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, func, *args)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        raise


async def run_all_or_nothing(
    jobs: Sequence[Callable[[], Awaitable]],
    concurrency: int,
) -> list:
    """
    Run jobs with bounded concurrency and return their results in job order.

    Args:
        jobs: Zero-argument coroutine factories
        concurrency: Maximum number of jobs in flight

    Returns:
        Results, one per job, in the order the jobs were given

    Raises:
        The exception of the lowest-numbered failed job; every other job is
        cancelled and awaited before it propagates
    """
    if not jobs:
        return []

    gate = asyncio.Semaphore(max(1, concurrency))

    async def guarded(job: Callable[[], Awaitable]):
        async with gate:
            return await job()

    tasks = [asyncio.create_task(guarded(job)) for job in jobs]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        leftovers = [task for task in tasks if not task.done()]
        if leftovers:
            logger.info(f"Cancelling {len(leftovers)} remaining chunk jobs")
            for task in leftovers:
                task.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

    for task in tasks:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()
    return [task.result() for task in tasks]


class SegmentEncoder:
    """
    Turns aligned chunk pairs into container records.
    """

    def __init__(
        self,
        tool: DeltaTool,
        capability: ToolCapability,
        scratch_dir: str,
        timeout: Optional[float],
        concurrency: int,
        on_bytes: Optional[ByteCallback] = None,
    ):
        """
        Initialize the encoder.

        Args:
            tool: Delta tool wrapper
            capability: Result of a successful tool probe
            scratch_dir: Directory owned by the running operation
            timeout: Seconds allowed per tool invocation
            concurrency: Maximum number of chunk jobs in flight
            on_bytes: Called with the byte count of every finished chunk
        """
        self.tool = tool
        self.capability = capability
        self.scratch_dir = scratch_dir
        self.timeout = timeout
        self.concurrency = concurrency
        self.on_bytes = on_bytes

    async def encode_chunk(
        self,
        index: int,
        old_path: str,
        new_path: str,
        old_chunk: Optional[ChunkDescriptor],
        new_chunk: Optional[ChunkDescriptor],
        profile: OptimizationProfile,
    ) -> ChunkRecord:
        """
        Encode one chunk index.

        Both sides present: the two ranges are extracted to scratch files and
        diffed by the tool. New side only: the new range is inserted whole
        without a subprocess. Old side only: the chunk is deleted.

        Raises:
            SubprocessFailureError: Tagged with the chunk index
        """
        if old_chunk is None and new_chunk is None:
            raise ValueError(f"Chunk {index} has neither an old nor a new side")

        if new_chunk is None:
            record = ChunkRecord(index=index, kind=ChunkKind.DELETED_WHOLE, payload=PayloadRef.empty())
            self._report(old_chunk.size_bytes)
            return record

        if old_chunk is None:
            record = ChunkRecord(
                index=index,
                kind=ChunkKind.INSERTED_WHOLE,
                payload=PayloadRef(path=new_path, offset=new_chunk.start_byte, length=new_chunk.size_bytes),
            )
            self._report(new_chunk.size_bytes)
            return record

        old_scratch = scratch_chunk_path(self.scratch_dir, "old", index)
        new_scratch = scratch_chunk_path(self.scratch_dir, "new", index)
        patch_scratch = scratch_chunk_path(self.scratch_dir, "patch", index)

        try:
            await run_blocking(extract_ranges, [
                (old_path, old_chunk.start_byte, old_chunk.size_bytes, old_scratch),
                (new_path, new_chunk.start_byte, new_chunk.size_bytes, new_scratch),
            ])
            try:
                await self.tool.encode(self.capability, old_scratch, new_scratch, patch_scratch, profile, self.timeout)
            except SubprocessFailureError as e:
                raise with_chunk_index(e, index)
        finally:
            delete_file(old_scratch)
            delete_file(new_scratch)

        patch_size = os.stat(patch_scratch).st_size
        logger.debug(f"Encoded chunk {index} [{new_chunk.size_bytes} -> {patch_size} bytes]")
        self._report(new_chunk.size_bytes)
        return ChunkRecord(
            index=index,
            kind=ChunkKind.DIFFED,
            payload=PayloadRef(path=patch_scratch, offset=0, length=patch_size),
        )

    async def encode_all(
        self,
        old_path: str,
        new_path: str,
        aligned: List[AlignedChunk],
        profile: OptimizationProfile,
    ) -> List[ChunkRecord]:
        """
        Encode every aligned chunk; records come back in index order.
        """
        jobs = [
            self._job(index, old_path, new_path, old_chunk, new_chunk, profile)
            for index, old_chunk, new_chunk in aligned
        ]
        return await run_all_or_nothing(jobs, self.concurrency)

    def _job(self, index, old_path, new_path, old_chunk, new_chunk, profile):
        return lambda: self.encode_chunk(index, old_path, new_path, old_chunk, new_chunk, profile)

    def _report(self, size: int) -> None:
        if self.on_bytes:
            self.on_bytes(size)


class SegmentDecoder:
    """
    Turns container records back into output byte ranges.
    """

    def __init__(
        self,
        tool: DeltaTool,
        capability: ToolCapability,
        scratch_dir: str,
        timeout: Optional[float],
        concurrency: int,
        skip_verification: bool = False,
        on_bytes: Optional[ByteCallback] = None,
    ):
        self.tool = tool
        self.capability = capability
        self.scratch_dir = scratch_dir
        self.timeout = timeout
        self.concurrency = concurrency
        self.skip_verification = skip_verification
        self.on_bytes = on_bytes

    @staticmethod
    def check_records(records: List[ChunkRecord], old_plan: List[ChunkDescriptor]) -> None:
        """
        Reject records that cannot be replayed against the old file.

        Raises:
            CorruptContainerError: If a diffed record has no matching old chunk
        """
        for record in records:
            if record.kind == ChunkKind.DIFFED and record.index >= len(old_plan):
                raise CorruptContainerError(
                    f"Diffed record {record.index} has no source chunk (old file has {len(old_plan)} chunks)"
                )

    async def decode_record(
        self,
        record: ChunkRecord,
        old_path: str,
        old_chunk: Optional[ChunkDescriptor],
    ) -> Optional[PayloadRef]:
        """
        Rebuild the output bytes of one record.

        Returns:
            Range holding the output bytes of this chunk, or None for a deleted chunk
        """
        if record.kind == ChunkKind.DELETED_WHOLE:
            return None

        if record.kind == ChunkKind.INSERTED_WHOLE:
            self._report(record.payload.length)
            return record.payload

        if old_chunk is None:
            raise CorruptContainerError(f"Diffed record {record.index} has no source chunk")

        old_scratch = scratch_chunk_path(self.scratch_dir, "old", record.index)
        patch_scratch = scratch_chunk_path(self.scratch_dir, "patch", record.index)
        out_scratch = scratch_chunk_path(self.scratch_dir, "out", record.index)

        try:
            await run_blocking(extract_ranges, [
                (old_path, old_chunk.start_byte, old_chunk.size_bytes, old_scratch),
                (record.payload.path, record.payload.offset, record.payload.length, patch_scratch),
            ])
            try:
                await self.tool.decode(
                    self.capability, old_scratch, patch_scratch, out_scratch, self.skip_verification, self.timeout
                )
            except SubprocessFailureError as e:
                raise with_chunk_index(e, record.index)
        finally:
            delete_file(old_scratch)
            delete_file(patch_scratch)

        out_size = os.stat(out_scratch).st_size
        logger.debug(f"Decoded chunk {record.index} [{record.payload.length} -> {out_size} bytes]")
        self._report(out_size)
        return PayloadRef(path=out_scratch, offset=0, length=out_size)

    async def decode_all(
        self,
        records: List[ChunkRecord],
        old_path: str,
        old_plan: List[ChunkDescriptor],
    ) -> List[Optional[PayloadRef]]:
        """
        Decode every record; outputs come back in index order.
        """
        self.check_records(records, old_plan)
        jobs = [
            self._job(record, old_path, old_plan[record.index] if record.index < len(old_plan) else None)
            for record in records
        ]
        return await run_all_or_nothing(jobs, self.concurrency)

    def _job(self, record, old_path, old_chunk):
        return lambda: self.decode_record(record, old_path, old_chunk)

    def _report(self, size: int) -> None:
        if self.on_bytes:
            self.on_bytes(size)
