"""
Tests for the Recognition Pipeline and Scheduling Primitives
============================================================
"""

import asyncio

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import CameraUnavailableError
from core.events import EventBus, Events
from core.pipeline import RecognitionPipeline
from core.scheduler import CancellationToken, ManualClock, RateGate, run_cooperative
from core.types import DetectionResult, LandmarkPoint, SpeechState
from modules.control.speech_debouncer import SpeechDebouncer
from modules.dataset.store import ExampleStore
from modules.detection.feature_assembler import FeatureAssembler
from modules.recognition.knn_classifier import NearestNeighborClassifier
from modules.recognition.vote_buffer import VoteBuffer
from modules.transcript.ledger import TranscriptLedger


def hand_frame():
    hand = [LandmarkPoint(0.02 * i, 0.03 * i, 0.0) for i in range(21)]
    return DetectionResult(hands=[hand])


class FakeCamera:
    """Yields a new frame on every read unless frozen."""

    def __init__(self, on_read=None, fail_on=()):
        self.frame_id = 0
        self.reads = 0
        self.frozen = False
        self.opened = False
        self.released = False
        self.on_read = on_read
        self.fail_on = set(fail_on)

    def open(self):
        self.opened = True

    def read(self):
        self.reads += 1
        if self.on_read:
            self.on_read(self.reads)
        if self.reads in self.fail_on:
            raise RuntimeError("camera glitch")
        if not self.frozen:
            self.frame_id += 1
        return self.frame_id, object()

    def release(self):
        self.released = True


class FakeDetector:
    def __init__(self, result=None, errors=0):
        self.result = result if result is not None else hand_frame()
        self.errors = errors
        self.calls = []
        self.closed = False

    def initialize(self):
        pass

    async def detect(self, frame, timestamp_ms):
        self.calls.append(timestamp_ms)
        if self.errors:
            self.errors -= 1
            raise RuntimeError("inference failed")
        return self.result

    def close(self):
        self.closed = True


class FakeSynthesizer:
    def __init__(self):
        self.spoken = []
        self.cancels = 0

    def voices(self):
        return []

    def cancel(self):
        self.cancels += 1

    async def speak(self, utterance):
        self.spoken.append(utterance.text)


@pytest.fixture
def bus():
    bus = EventBus()
    bus.reset()
    yield bus
    bus.reset()


@pytest.fixture
def dataset():
    hello = FeatureAssembler().assemble(hand_frame())
    return {"hello": [hello] * 3, "bye": [[9.0] * len(hello)] * 3}


class Harness:
    def __init__(self, bus, dataset, detector=None, camera=None, **config):
        self.clock = ManualClock()
        self.camera = camera or FakeCamera()
        self.detector = detector or FakeDetector()
        self.synth = FakeSynthesizer()
        self.ledger = TranscriptLedger()
        assembler = FeatureAssembler()
        self.store = ExampleStore(assembler)
        self.store.load(dataset)
        self.debouncer = SpeechDebouncer(
            {"cancel_settle_ms": 0, "voice_wait_ms": 0},
            SpeechState(),
            self.synth,
            ledger=self.ledger,
            event_bus=bus,
        )
        self.pipeline = RecognitionPipeline(
            camera=self.camera,
            detector=self.detector,
            assembler=assembler,
            classifier=NearestNeighborClassifier(),
            store=self.store,
            votes=VoteBuffer(),
            debouncer=self.debouncer,
            clock=self.clock,
            event_bus=bus,
            config=dict({"idle_sleep_ms": 0}, **config),
        )

    async def steps(self, n, every_ms=100):
        tallies = []
        for _ in range(n):
            tallies.append(await self.pipeline.step())
            self.clock.advance(every_ms)
        return tallies


class TestRecognitionPipeline:
    """Test suite for the detect -> classify -> vote -> speak loop."""

    def test_stable_gesture_is_spoken(self, bus, dataset):
        """Votes from one second of frames become one spoken word."""
        h = Harness(bus, dataset)

        async def scenario():
            tallies = await h.steps(11)
            await h.debouncer.drain()
            return tallies

        tallies = asyncio.run(scenario())
        assert all(t is None for t in tallies[:10])
        assert tallies[10].label == "hello"
        assert tallies[10].confidence == 1.0
        assert h.synth.spoken == ["hello"]
        assert h.ledger.render() == "hello"
        assert h.pipeline.state.current_gesture == "hello"
        snapshot = h.pipeline.state.snapshot()
        assert snapshot["gesture"] == "hello"
        assert snapshot["hand_count"] == 1
        assert snapshot["frame_count"] == 11

    def test_frame_gate_limits_sampling(self, bus, dataset):
        h = Harness(bus, dataset)
        asyncio.run(h.steps(6, every_ms=50))
        # frames at t=0..250, sampled at 0, 100, 200
        assert h.detector.calls == [0, 100, 200]
        assert h.pipeline.state.frame_count == 6
        assert h.pipeline.state.sampled_count == 3

    def test_same_frame_not_reprocessed(self, bus, dataset):
        h = Harness(bus, dataset)
        asyncio.run(h.steps(1))
        h.camera.frozen = True
        asyncio.run(h.steps(5))
        assert len(h.detector.calls) == 1
        assert h.pipeline.state.frame_count == 1
        h.camera.frozen = False
        asyncio.run(h.steps(1))
        assert len(h.detector.calls) == 2

    def test_detector_failure_does_not_stall(self, bus, dataset):
        errors = []
        bus.subscribe(Events.DETECTOR_ERROR, lambda **kw: errors.append(kw))
        h = Harness(bus, dataset, detector=FakeDetector(errors=1))
        asyncio.run(h.steps(3))
        assert h.pipeline.state.detector_failures == 1
        assert errors[0]["error"] == "inference failed"
        assert len(h.detector.calls) == 3
        assert h.pipeline.state.sampled_count == 2

    def test_no_hand_casts_no_votes(self, bus, dataset):
        h = Harness(bus, dataset, detector=FakeDetector(result=DetectionResult()))

        async def scenario():
            return await h.steps(11)

        tallies = asyncio.run(scenario())
        assert tallies[10].is_empty
        assert h.synth.spoken == []

    def test_empty_store_stays_silent(self, bus):
        h = Harness(bus, {})
        tallies = asyncio.run(h.steps(11))
        assert tallies[10].is_empty
        assert h.pipeline.state.current_gesture == ""

    def test_gesture_cleared_event(self, bus, dataset):
        cleared = []
        bus.subscribe(Events.GESTURE_CLEARED, lambda **kw: cleared.append(kw))
        h = Harness(bus, dataset)

        async def scenario():
            await h.steps(11)
            await h.debouncer.drain()
            h.detector.result = DetectionResult()
            await h.steps(11)

        asyncio.run(scenario())
        assert cleared == [{"previous": "hello"}]
        assert h.debouncer.state.display_text == ""

    def test_run_until_cancelled(self, bus, dataset):
        token = CancellationToken()
        camera = FakeCamera(on_read=lambda n: token.cancel() if n >= 5 else None)
        h = Harness(bus, dataset, camera=camera)
        iterations = asyncio.run(h.pipeline.run(token))
        assert iterations == 5

    def test_run_survives_step_errors(self, bus, dataset):
        token = CancellationToken()
        camera = FakeCamera(on_read=lambda n: token.cancel() if n >= 4 else None,
                            fail_on=(2,))
        h = Harness(bus, dataset, camera=camera)
        iterations = asyncio.run(h.pipeline.run(token))
        assert iterations == 4
        assert h.pipeline.state.error == "camera glitch"

    def test_stop_releases_everything(self, bus, dataset):
        h = Harness(bus, dataset)
        h.pipeline.stop()
        assert h.camera.released
        assert h.detector.closed
        assert h.synth.cancels == 1

    def test_start_camera_failure_is_fatal(self, bus, dataset):
        h = Harness(bus, dataset)

        def broken_open():
            raise CameraUnavailableError("permission denied")

        h.camera.open = broken_open
        with pytest.raises(CameraUnavailableError):
            h.pipeline.start()
        assert h.pipeline.state.error == "permission denied"
        assert h.detector.closed


class TestScheduler:
    """Clock, gates, cancellation and the cooperative loop."""

    def test_manual_clock(self):
        clock = ManualClock(10)
        assert clock.advance(5) == 15
        clock.set(100)
        assert clock.now() == 100

    def test_rate_gate_fire_first(self):
        gate = RateGate(100)
        assert gate.ready(0)
        assert not gate.ready(99)
        assert gate.ready(100)
        assert not gate.ready(150)

    def test_rate_gate_armed_first(self):
        gate = RateGate(1000, fire_first=False)
        assert not gate.ready(0)
        assert not gate.ready(999)
        assert gate.ready(1000)

    def test_rate_gate_skips_rather_than_drifts(self):
        gate = RateGate(100)
        gate.ready(0)
        assert gate.ready(350)
        assert not gate.ready(400)
        assert gate.ready(450)

    def test_cancellation_token_callbacks(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("a"))
        token.cancel()
        token.cancel()
        token.on_cancel(lambda: calls.append("late"))
        assert calls == ["a", "late"]
        assert token.cancelled

    def test_run_cooperative_reports_errors(self):
        token = CancellationToken()
        seen = []
        count = {"n": 0}

        async def step():
            count["n"] += 1
            if count["n"] == 1:
                raise ValueError("boom")
            if count["n"] == 3:
                token.cancel()

        iterations = asyncio.run(run_cooperative(step, token, idle_sleep_ms=0,
                                                 on_error=seen.append))
        assert iterations == 3
        assert [str(e) for e in seen] == ["boom"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
