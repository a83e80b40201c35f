"""
Batch scheduling: independent patch operations drained from a queue by a
fixed number of workers.

A failure of one item never aborts the others; every item produces exactly one
BatchOutcome, reported in input order.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from common.constants import MAX_CONCURRENT_SUBPROCESSES
from common.exceptions import ErrorKind, InvalidConfigurationError
from common.types import BatchStatus
from patcher.results import BatchOutcome, OperationResult, TimingMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchPair:
    """
    One unit of batch work.

    Attributes:
        name: File name reported in the outcome
        inputs: Files that must all exist for the item to run
        output: File the operation produces
    """
    name: str
    inputs: Tuple[str, ...]
    output: str

    def missing_inputs(self) -> List[str]:
        return [path for path in self.inputs if not os.path.isfile(path)]


BatchOperation = Callable[[BatchPair], Awaitable[OperationResult]]


async def run_pair(pair: BatchPair, operation: BatchOperation) -> BatchOutcome:
    """
    Run one item and convert whatever happens into an outcome.
    """
    missing = pair.missing_inputs()
    if missing:
        logger.info(f"Skipping {pair.name}: missing {', '.join(missing)}")
        return BatchOutcome(
            success=False,
            file=pair.name,
            status=BatchStatus.SKIPPED,
            error=f"Missing counterpart: {', '.join(missing)}",
            error_kind=ErrorKind.MISSING_INPUT,
        )

    started = time.monotonic()
    try:
        result = await operation(pair)
    except Exception as e:
        logger.error(f"Batch item {pair.name} raised: {e}", exc_info=True)
        return BatchOutcome(
            success=False,
            file=pair.name,
            status=BatchStatus.ERROR,
            error=str(e),
            error_kind=ErrorKind.INTERNAL,
            metrics=TimingMetrics.from_ms((time.monotonic() - started) * 1000),
        )

    metrics = TimingMetrics.from_ms((time.monotonic() - started) * 1000)
    if not result.success:
        logger.warning(f"Batch item {pair.name} failed: {result.error}")
        return BatchOutcome(
            success=False,
            file=pair.name,
            status=BatchStatus.ERROR,
            error=result.error,
            error_kind=result.error_kind,
            metrics=metrics,
        )

    return BatchOutcome(success=True, file=pair.name, status=BatchStatus.SUCCESS, metrics=metrics)


async def run_batch(
    pairs: Sequence[BatchPair],
    operation: BatchOperation,
    max_parallel: int = MAX_CONCURRENT_SUBPROCESSES,
) -> List[BatchOutcome]:
    """
    Run every pair with at most max_parallel operations in flight.

    Args:
        pairs: Items to process
        operation: Coroutine function turning a pair into a result
        max_parallel: Number of workers

    Returns:
        One outcome per pair, in the order of pairs

    Raises:
        InvalidConfigurationError: If max_parallel is not positive
    """
    if max_parallel <= 0:
        raise InvalidConfigurationError(f"max_parallel must be > 0, got {max_parallel}")
    if not pairs:
        return []

    queue: asyncio.Queue = asyncio.Queue()
    for index, pair in enumerate(pairs):
        queue.put_nowait((index, pair))

    outcomes: List[Optional[BatchOutcome]] = [None] * len(pairs)

    async def worker(worker_id: int) -> None:
        while True:
            try:
                index, pair = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug(f"Worker {worker_id} processing {pair.name}")
            outcomes[index] = await run_pair(pair, operation)
            queue.task_done()

    worker_count = min(max_parallel, len(pairs))
    logger.info(f"Running batch of {len(pairs)} items with {worker_count} workers")
    await asyncio.gather(*(worker(i) for i in range(worker_count)))

    succeeded = sum(1 for outcome in outcomes if outcome.status == BatchStatus.SUCCESS)
    logger.info(f"Batch finished: {succeeded}/{len(pairs)} succeeded")
    return outcomes
