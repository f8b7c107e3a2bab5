"""
Core pipeline orchestrator for gesture-to-speech recognition.

Architecture:
    Camera -> LandmarkDetector -> FeatureAssembler -> NearestNeighborClassifier
    -> VoteBuffer -> SpeechDebouncer -> (Translator, TranscriptLedger, Synthesizer)

One step() is one cooperative iteration:
    1. read the clock once
    2. new frame and frame gate open -> detect, assemble, classify, accept
    3. tick gate open -> prune/poll the vote buffer, offer the tally to speech

Detection for a frame is fully awaited before the next frame is looked at,
so at most one detection is ever in flight.
"""

import logging
from typing import Optional

from core.events import EventBus, Events
from core.scheduler import CancellationToken, MonotonicClock, RateGate, run_cooperative
from core.types import PipelineState, VoteTally
from core.errors import PipelineError

logger = logging.getLogger(__name__)

FRAME_INTERVAL_MS = 100


class RecognitionPipeline:
    """Composable recognition loop.

    All collaborators are injected; the pipeline owns only the gates,
    the observed PipelineState and the cancellation token.
    """

    def __init__(
        self,
        camera,
        detector,
        assembler,
        classifier,
        store,
        votes,
        debouncer,
        clock=None,
        event_bus=None,
        config=None,
    ):
        self._camera = camera
        self._detector = detector
        self._assembler = assembler
        self._classifier = classifier
        self._store = store
        self._votes = votes
        self._debouncer = debouncer
        self._clock = clock or MonotonicClock()
        self._bus = event_bus or EventBus()

        config = config or {}
        self._require_hand = config.get("require_hand", True)
        self._idle_sleep_ms = config.get("idle_sleep_ms", 5)
        self._frame_gate = RateGate(config.get("frame_interval_ms", FRAME_INTERVAL_MS),
                                    fire_first=True)
        self._tick_gate = RateGate(votes.window_ms, fire_first=False)

        self._state = PipelineState()
        self._token: Optional[CancellationToken] = None
        self._last_frame_id = None
        self._last_label = ""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        """Open the camera and initialize the detector.

        Raises:
            CameraUnavailableError, DetectorInitError: fatal for the session.
        """
        try:
            self._detector.initialize()
            self._camera.open()
        except PipelineError as e:
            self._state.error = str(e)
            self._detector.close()
            raise
        logger.info("Pipeline started (%d gestures, %d examples loaded)",
                    len(self._store), self._store.total_examples)

    async def run(self, token: Optional[CancellationToken] = None) -> int:
        """Loop step() until cancelled. Returns the iteration count."""
        self._token = token or CancellationToken()
        return await run_cooperative(self.step, self._token,
                                     idle_sleep_ms=self._idle_sleep_ms,
                                     on_error=self._on_step_error)

    def stop(self):
        """Cancel the loop and pending speech, release camera and detector."""
        if self._token is not None:
            self._token.cancel()
        self._debouncer.cancel()
        self._camera.release()
        self._detector.close()
        logger.info("Pipeline stopped after %d frames", self._state.frame_count)

    # =========================================================================
    # Iteration
    # =========================================================================

    async def step(self) -> Optional[VoteTally]:
        """Run one iteration.

        Returns:
            The tally offered to speech, or None if the tick gate was closed.
        """
        now = self._clock.now()

        frame_id, frame = self._camera.read()
        if frame is not None and frame_id != self._last_frame_id:
            self._last_frame_id = frame_id
            self._state.frame_count += 1
            if self._frame_gate.ready(now):
                await self._process_frame(frame, now)

        tally = None
        if self._tick_gate.ready(now):
            tally = self._votes.tick(now)
            self._publish(tally)
            self._debouncer.offer(tally, now)

        self._state.display_text = self._debouncer.state.display_text
        return tally

    async def _process_frame(self, frame, now: float):
        try:
            detections = await self._detector.detect(frame, now)
        except Exception as e:
            self._state.detector_failures += 1
            logger.debug("Detection failed on frame %s: %s", self._last_frame_id, e)
            self._bus.emit(Events.DETECTOR_ERROR, error=str(e),
                           failures=self._state.detector_failures)
            return

        self._state.sampled_count += 1
        self._state.hand_count = detections.hand_count
        if self._require_hand and detections.hand_count == 0:
            return
        if self._store.is_empty:
            return

        vector = self._assembler.assemble(detections)
        result = self._classifier.classify(vector, self._store)
        if result is None:
            return
        if self._votes.accept(result.label, result.confidence, now):
            self._bus.emit(Events.GESTURE_ACCEPTED, label=result.label,
                           confidence=result.confidence)

    def _publish(self, tally: VoteTally):
        self._state.current_gesture = tally.label
        self._state.confidence = tally.confidence
        if not tally.is_empty:
            self._bus.emit(Events.GESTURE_STABLE, label=tally.label,
                           confidence=tally.confidence, votes=tally.votes)
        elif self._last_label:
            self._bus.emit(Events.GESTURE_CLEARED, previous=self._last_label)
        self._last_label = tally.label

    def _on_step_error(self, error: Exception):
        self._state.error = str(error)
        logger.warning("Loop iteration failed: %s", error)

    # =========================================================================
    # Observation
    # =========================================================================

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def debouncer(self):
        return self._debouncer

    @property
    def frame_count(self) -> int:
        return self._state.frame_count

    @property
    def current_gesture(self) -> str:
        return self._state.current_gesture
