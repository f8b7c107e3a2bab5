"""
MediaPipe hand + pose landmark detection wrapper.

Runs the two solutions on the same RGB frame and converts their results
into a DetectionResult. Inference is blocking, so detect() hands it to a
worker thread; only one detection round is ever in flight.
"""

import asyncio
import logging

import cv2
import numpy as np
import mediapipe as mp

from core.errors import DetectorInitError
from core.types import DetectionResult, LandmarkPoint

logger = logging.getLogger(__name__)


class MediaPipeLandmarkDetector:
    """MediaPipe Hands + Pose wrapper."""

    def __init__(self, config: dict):
        self._model_complexity = config.get("model_complexity", 0)
        self._pose_complexity = config.get("pose_model_complexity", 0)
        self._max_hands = config.get("max_num_hands", 2)
        self._min_detect_conf = config.get("min_detection_confidence", 0.5)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

        self._hands = None
        self._pose = None
        self._initialized = False

    def initialize(self):
        """Create both MediaPipe solutions.

        Raises:
            DetectorInitError: if either model fails to load
        """
        try:
            self._hands = mp.solutions.hands.Hands(
                static_image_mode=False,
                model_complexity=self._model_complexity,
                max_num_hands=self._max_hands,
                min_detection_confidence=self._min_detect_conf,
                min_tracking_confidence=self._min_track_conf,
            )
            self._pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=self._pose_complexity,
                min_detection_confidence=self._min_detect_conf,
                min_tracking_confidence=self._min_track_conf,
            )
        except Exception as e:
            self.close()
            raise DetectorInitError(f"Failed to load gesture model: {e}") from e

        self._initialized = True
        logger.info(
            "MediaPipe initialized (hands complexity=%d, max_hands=%d, "
            "pose complexity=%d, detect_conf=%.2f, track_conf=%.2f)",
            self._model_complexity, self._max_hands, self._pose_complexity,
            self._min_detect_conf, self._min_track_conf,
        )

    async def detect(self, frame: np.ndarray, timestamp_ms: float) -> DetectionResult:
        """Detect hands and pose on a BGR frame.

        The solutions API tracks frames internally, so timestamp_ms is only
        used for logging.
        """
        if not self._initialized:
            self.initialize()
        return await asyncio.to_thread(self._process, frame, timestamp_ms)

    def _process(self, frame: np.ndarray, timestamp_ms: float) -> DetectionResult:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False
        hand_results = self._hands.process(rgb)
        pose_results = self._pose.process(rgb)

        result = DetectionResult()
        if hand_results and hand_results.multi_hand_landmarks:
            for hand_landmarks in hand_results.multi_hand_landmarks:
                result.hands.append([
                    LandmarkPoint(lm.x, lm.y, lm.z) for lm in hand_landmarks.landmark
                ])
        if pose_results and pose_results.pose_landmarks:
            result.poses.append([
                LandmarkPoint(lm.x, lm.y, lm.z, lm.visibility)
                for lm in pose_results.pose_landmarks.landmark
            ])

        logger.debug("Detection @%.0fms: %d hand(s), pose=%s",
                     timestamp_ms, result.hand_count, result.has_pose)
        return result

    def close(self):
        """Release MediaPipe resources."""
        for solution in (self._hands, self._pose):
            if solution is not None:
                solution.close()
        if self._initialized:
            logger.info("MediaPipe detectors closed")
        self._hands = None
        self._pose = None
        self._initialized = False

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
