"""
Progress estimation for create/apply operations.

Each operation walks a fixed sequence of phases, every phase owning a slice of
the 0-100 range. Where byte counters exist the slice is filled proportionally;
where the delta tool gives no signal a ticker closes part of the remaining gap
on every tick without ever reaching the ceiling. Emitted percentages never go
down, and 100 is only emitted by finish().
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from common.constants import (
    PROGRESS_MIN_INTERVAL_SECONDS,
    SYNTHETIC_STEP_FRACTION,
    SYNTHETIC_TICK_SECONDS,
)
from common.metrics import calculate_eta, calculate_speed
from common.types import ProgressSnapshot

logger = logging.getLogger(__name__)

SYNTHETIC_CEILING_GAP = 0.05


class Phase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CHECKING_TOOL = "checking_tool"
    PLANNING = "planning"
    ENCODING = "encoding"
    COMBINING = "combining"
    DECODING = "decoding"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


PhaseRanges = List[Tuple[Phase, float, float]]

CREATE_PHASES: PhaseRanges = [
    (Phase.VALIDATING, 0, 20),
    (Phase.CHECKING_TOOL, 20, 25),
    (Phase.PLANNING, 25, 30),
    (Phase.ENCODING, 30, 90),
    (Phase.COMBINING, 90, 98),
    (Phase.DONE, 100, 100),
]

APPLY_PHASES: PhaseRanges = [
    (Phase.VALIDATING, 0, 20),
    (Phase.CHECKING_TOOL, 20, 25),
    (Phase.DECODING, 25, 85),
    (Phase.VERIFYING, 85, 98),
    (Phase.DONE, 100, 100),
]


class ProgressSink(Protocol):
    """Receives progress snapshots and the final operation result."""

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        ...

    def on_result(self, result: Any) -> None:
        ...


class NullSink:
    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        pass

    def on_result(self, result: Any) -> None:
        pass


class CallbackSink:
    """
    Adapts plain callbacks to the sink interface.

    Successful results go to on_complete, failed ones to on_error.
    """

    def __init__(
        self,
        on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Any], None]] = None,
    ):
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        if self._on_progress:
            self._on_progress(snapshot)

    def on_result(self, result: Any) -> None:
        if getattr(result, "success", False):
            if self._on_complete:
                self._on_complete(result)
        elif self._on_error:
            self._on_error(result)


class EventChannel:
    """
    Subscription-style adapter: handlers register for "progress", "complete" or "error".
    """

    EVENTS = ("progress", "complete", "error")

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {event: [] for event in self.EVENTS}

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            event: One of "progress", "complete", "error"
            handler: Called with the snapshot or result

        Returns:
            Function that removes the subscription
        """
        if event not in self._handlers:
            raise ValueError(f"Unknown event '{event}', expected one of {self.EVENTS}")
        self._handlers[event].append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event: str, handler: Callable[[Any], None]) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self._dispatch("progress", snapshot)

    def on_result(self, result: Any) -> None:
        self._dispatch("complete" if getattr(result, "success", False) else "error", result)

    def _dispatch(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers[event]):
            handler(payload)


class FanOutSink:
    """Forwards every message to several sinks."""

    def __init__(self, *sinks: Optional[ProgressSink]):
        self._sinks = [sink for sink in sinks if sink is not None]

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        for sink in self._sinks:
            sink.on_progress(snapshot)

    def on_result(self, result: Any) -> None:
        for sink in self._sinks:
            sink.on_result(result)


class ProgressEstimator:
    """
    Turns phase transitions and byte counters into monotonic progress snapshots.

    The estimator performs no I/O; every snapshot is pushed to the sink.
    """

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        phases: PhaseRanges = CREATE_PHASES,
        clock: Callable[[], float] = time.monotonic,
        min_interval: float = PROGRESS_MIN_INTERVAL_SECONDS,
        step_fraction: float = SYNTHETIC_STEP_FRACTION,
    ):
        self._sink = sink or NullSink()
        self._order = [phase for phase, _, _ in phases]
        self._ranges = {phase: (floor, ceiling) for phase, floor, ceiling in phases}
        self._clock = clock
        self._min_interval = min_interval
        self._step_fraction = step_fraction

        self._phase = Phase.IDLE
        self._message = ""
        self._percentage = 0.0
        self._last_emit: Optional[float] = None
        self._phase_started = clock()

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def percentage(self) -> float:
        return self._percentage

    def enter(
        self,
        phase: Phase,
        message: str,
        current: Optional[int] = None,
        total: Optional[int] = None
    ) -> None:
        """
        Move to a later phase and emit its floor.

        Raises:
            ValueError: If the phase is unknown or not after the current one
        """
        if self._phase in (Phase.DONE, Phase.FAILED):
            raise ValueError(f"Operation already {self._phase.value}")
        if phase not in self._ranges or phase == Phase.DONE:
            raise ValueError(f"Phase {phase.value} cannot be entered here")
        if self._phase in self._ranges and self._order.index(phase) <= self._order.index(self._phase):
            raise ValueError(f"Phase {phase.value} does not follow {self._phase.value}")

        self._phase = phase
        self._message = message
        self._phase_started = self._clock()
        floor, _ = self._ranges[phase]
        logger.debug(f"Entering phase {phase.value}: {message}")
        self._emit(max(self._percentage, floor), current=current, total=total)

    def tick(self) -> None:
        """Synthetic step toward the ceiling of the current phase."""
        if not self._active():
            return
        _, ceiling = self._ranges[self._phase]
        limit = ceiling - SYNTHETIC_CEILING_GAP
        if self._percentage >= limit:
            return
        target = self._percentage + (ceiling - self._percentage) * self._step_fraction
        self._emit(min(target, limit))

    def advance_bytes(self, current: int, total: int, message: Optional[str] = None) -> None:
        """
        Report real byte progress inside the current phase.

        Emissions are rate limited except for the one reaching the total.
        """
        if not self._active() or total <= 0:
            return
        if message:
            self._message = message

        now = self._clock()
        finished = current >= total
        if not finished and self._last_emit is not None and now - self._last_emit < self._min_interval:
            return

        floor, ceiling = self._ranges[self._phase]
        fraction = min(current / total, 1.0)
        target = floor + fraction * (ceiling - floor)

        elapsed_ms = (now - self._phase_started) * 1000
        speed = calculate_speed(current, elapsed_ms)
        bytes_per_second = current / (elapsed_ms / 1000) if elapsed_ms > 0 else 0.0
        eta = calculate_eta(current, total, bytes_per_second)

        self._emit(max(self._percentage, target), current=current, total=total, speed=speed, eta=eta)

    def complete_phase(self, message: Optional[str] = None) -> None:
        """Snap to the ceiling of the current phase."""
        if not self._active():
            return
        if message:
            self._message = message
        _, ceiling = self._ranges[self._phase]
        self._emit(max(self._percentage, ceiling))

    def finish(self, message: str, current: Optional[int] = None, total: Optional[int] = None) -> None:
        """Emit the terminal 100% snapshot of a successful operation."""
        if self._phase == Phase.FAILED:
            raise ValueError("Cannot finish a failed operation")
        self._phase = Phase.DONE
        self._message = message
        self._emit(100.0, current=current, total=total)

    def fail(self, message: str) -> None:
        """Emit a terminal failure snapshot at the current percentage."""
        if self._phase in (Phase.DONE, Phase.FAILED):
            return
        self._phase = Phase.FAILED
        self._message = message
        self._emit(self._percentage)

    def _active(self) -> bool:
        return self._phase in self._ranges and self._phase != Phase.DONE

    def _emit(
        self,
        percentage: float,
        current: Optional[int] = None,
        total: Optional[int] = None,
        speed: Optional[str] = None,
        eta: Optional[str] = None,
    ) -> None:
        percentage = round(min(max(percentage, self._percentage), 100.0), 2)
        if percentage >= 100.0 and self._phase != Phase.DONE:
            percentage = self._percentage
        self._percentage = percentage
        self._last_emit = self._clock()
        self._sink.on_progress(ProgressSnapshot(
            percentage=percentage,
            message=self._message,
            phase=self._phase.value,
            current=current,
            total=total,
            speed=speed,
            eta=eta,
        ))


class SyntheticTicker:
    """
    Calls estimator.tick() periodically while a subprocess without byte telemetry runs.

    Usage:
        async with SyntheticTicker(estimator):
            await tool.encode(...)
    """

    def __init__(self, estimator: ProgressEstimator, interval: float = SYNTHETIC_TICK_SECONDS):
        self._estimator = estimator
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "SyntheticTicker":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._estimator.tick()
