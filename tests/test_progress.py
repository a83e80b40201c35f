"""Tests for progress estimation and sink adapters."""

import asyncio

import pytest

from common.types import ProgressSnapshot
from patcher.progress import (
    APPLY_PHASES,
    CREATE_PHASES,
    CallbackSink,
    EventChannel,
    FanOutSink,
    Phase,
    ProgressEstimator,
    SyntheticTicker,
)
from patcher.results import TimingMetrics, VerifyResult


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def estimator(recording_sink, clock):
    return ProgressEstimator(recording_sink, CREATE_PHASES, clock=clock)


def test_enter_emits_phase_floor(estimator, recording_sink):
    estimator.enter(Phase.VALIDATING, "Validating input files...")
    estimator.complete_phase()
    estimator.enter(Phase.CHECKING_TOOL, "Checking delta tool...")

    assert recording_sink.percentages == [0, 20, 20]
    assert recording_sink.snapshots[-1].phase == "checking_tool"
    assert recording_sink.snapshots[-1].message == "Checking delta tool..."


def test_full_create_sequence_is_monotonic_and_ends_at_100(estimator, recording_sink, clock):
    for phase in (Phase.VALIDATING, Phase.CHECKING_TOOL, Phase.PLANNING):
        estimator.enter(phase, phase.value)
        estimator.complete_phase()
    estimator.enter(Phase.ENCODING, "Encoding chunks...", current=0, total=100)
    for done in (10, 40, 70, 100):
        clock.now += 1
        estimator.advance_bytes(done, 100)
    estimator.complete_phase()
    estimator.enter(Phase.COMBINING, "Combining...")
    estimator.complete_phase()
    estimator.finish("Patch created successfully!")

    percentages = recording_sink.percentages
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100
    assert percentages.count(100) == 1
    assert recording_sink.snapshots[-1].phase == "done"


def test_advance_bytes_maps_into_phase_range(estimator, recording_sink, clock):
    estimator.enter(Phase.VALIDATING, "v")
    estimator.enter(Phase.ENCODING, "Encoding chunks...")
    clock.now = 2.0

    estimator.advance_bytes(50, 100)

    snapshot = recording_sink.snapshots[-1]
    assert snapshot.percentage == 60
    assert snapshot.current == 50
    assert snapshot.total == 100
    assert snapshot.speed.endswith("/s")
    assert snapshot.eta == "2.0s"


def test_advance_bytes_is_rate_limited(estimator, recording_sink, clock):
    estimator.enter(Phase.ENCODING, "Encoding chunks...")
    emitted = len(recording_sink.snapshots)

    clock.now = 0.05
    estimator.advance_bytes(10, 100)
    clock.now = 0.10
    estimator.advance_bytes(20, 100)

    assert len(recording_sink.snapshots) == emitted

    clock.now = 0.30
    estimator.advance_bytes(30, 100)
    assert len(recording_sink.snapshots) == emitted + 1


def test_advance_bytes_completion_bypasses_rate_limit(estimator, recording_sink, clock):
    estimator.enter(Phase.ENCODING, "Encoding chunks...")
    clock.now = 0.01
    estimator.advance_bytes(100, 100)

    assert recording_sink.percentages[-1] == 90


def test_tick_approaches_but_never_reaches_ceiling(estimator, recording_sink):
    estimator.enter(Phase.ENCODING, "Creating patch...")

    for _ in range(500):
        estimator.tick()

    percentages = recording_sink.percentages
    assert percentages == sorted(percentages)
    assert 89 < percentages[-1] < 90


def test_percentage_never_decreases_after_regressing_bytes(estimator, recording_sink, clock):
    estimator.enter(Phase.ENCODING, "Encoding chunks...")
    clock.now = 1
    estimator.advance_bytes(80, 100)
    clock.now = 2
    estimator.advance_bytes(10, 100)

    assert recording_sink.percentages == sorted(recording_sink.percentages)


def test_fail_never_reaches_100(estimator, recording_sink):
    estimator.enter(Phase.VALIDATING, "v")
    estimator.complete_phase()
    estimator.fail("Failed to create patch: boom")

    assert recording_sink.snapshots[-1].phase == "failed"
    assert recording_sink.percentages[-1] == 20
    assert 100 not in recording_sink.percentages
    with pytest.raises(ValueError):
        estimator.finish("done")


def test_phases_must_move_forward(estimator):
    estimator.enter(Phase.ENCODING, "Encoding...")

    with pytest.raises(ValueError):
        estimator.enter(Phase.VALIDATING, "back")
    with pytest.raises(ValueError):
        estimator.enter(Phase.DECODING, "not a create phase")
    with pytest.raises(ValueError):
        estimator.enter(Phase.DONE, "use finish")


def test_no_progress_after_done(estimator, recording_sink):
    estimator.enter(Phase.VALIDATING, "v")
    estimator.finish("done")
    count = len(recording_sink.snapshots)

    estimator.tick()
    estimator.complete_phase()

    assert len(recording_sink.snapshots) == count
    with pytest.raises(ValueError):
        estimator.enter(Phase.ENCODING, "late")


def test_apply_phase_ranges(recording_sink):
    estimator = ProgressEstimator(recording_sink, APPLY_PHASES)
    estimator.enter(Phase.VALIDATING, "v")
    estimator.complete_phase()
    estimator.enter(Phase.CHECKING_TOOL, "c")
    estimator.complete_phase()
    estimator.enter(Phase.DECODING, "d")
    estimator.complete_phase()
    estimator.enter(Phase.VERIFYING, "check")

    assert recording_sink.percentages == [0, 20, 20, 25, 25, 85, 85]


@pytest.mark.asyncio
async def test_synthetic_ticker_advances_while_running(recording_sink):
    estimator = ProgressEstimator(recording_sink, CREATE_PHASES)
    estimator.enter(Phase.ENCODING, "Creating patch...")

    async with SyntheticTicker(estimator, interval=0.01):
        await asyncio.sleep(0.1)
    stopped_at = len(recording_sink.snapshots)
    await asyncio.sleep(0.05)

    assert estimator.percentage > 30
    assert len(recording_sink.snapshots) == stopped_at


def _snapshot(percentage: float) -> ProgressSnapshot:
    return ProgressSnapshot(percentage=percentage, message="m", phase="encoding")


def _result(success: bool) -> VerifyResult:
    return VerifyResult(
        success=success,
        error=None if success else "boom",
        metrics=TimingMetrics.from_ms(1),
    )


def test_callback_sink_routes_results():
    progress, complete, errors = [], [], []
    sink = CallbackSink(on_progress=progress.append, on_complete=complete.append, on_error=errors.append)

    sink.on_progress(_snapshot(10))
    sink.on_result(_result(True))
    sink.on_result(_result(False))

    assert len(progress) == 1
    assert len(complete) == 1
    assert len(errors) == 1
    assert errors[0].error == "boom"


def test_event_channel_subscribe_and_unsubscribe():
    channel = EventChannel()
    seen = []
    unsubscribe = channel.subscribe("progress", seen.append)

    channel.on_progress(_snapshot(5))
    unsubscribe()
    channel.on_progress(_snapshot(6))

    assert [snapshot.percentage for snapshot in seen] == [5]


def test_event_channel_rejects_unknown_event():
    with pytest.raises(ValueError):
        EventChannel().subscribe("finished", print)


def test_event_channel_dispatches_error_results():
    channel = EventChannel()
    completed, failed = [], []
    channel.subscribe("complete", completed.append)
    channel.subscribe("error", failed.append)

    channel.on_result(_result(False))

    assert completed == []
    assert len(failed) == 1


def test_fan_out_sink_skips_none(recording_sink):
    other = []
    sink = FanOutSink(None, recording_sink, CallbackSink(on_progress=other.append))

    sink.on_progress(_snapshot(1))

    assert len(recording_sink.snapshots) == 1
    assert len(other) == 1
