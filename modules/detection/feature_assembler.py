"""
Per-frame feature assembly from hand and pose landmarks.

Feature layout:
    [hand 0: 21 × (x, y, z)] [hand 1: 21 × (x, y, z)] [pose 0/11/12 × (x, y, z, visibility)]

With hand padding enabled every vector is 138 floats long: absent hand
slots are zero-filled the same way a missing pose is. Without padding the
hand block is 63 floats per detected hand, as recorded by older datasets.
"""

import logging
from typing import List, Sequence

from core.types import DetectionResult, FeatureVector, LandmarkPoint

logger = logging.getLogger(__name__)

HAND_POINTS = 21
HAND_DIMS = HAND_POINTS * 3          # 63
MAX_HANDS = 2

# Nose, left shoulder, right shoulder
POSE_INDICES = (0, 11, 12)
POSE_DIMS = len(POSE_INDICES) * 4    # 12

PADDED_DIM = MAX_HANDS * HAND_DIMS + POSE_DIMS


class FeatureAssembler:
    """Turns one frame's detections into a FeatureVector. Never fails."""

    def __init__(self, pad_hands: bool = True, max_hands: int = MAX_HANDS):
        self._pad_hands = pad_hands
        self._max_hands = max_hands

    @property
    def pad_hands(self) -> bool:
        return self._pad_hands

    @property
    def feature_dim(self) -> int:
        """Fixed vector length, or 0 when unpadded (length varies)."""
        if not self._pad_hands:
            return 0
        return self._max_hands * HAND_DIMS + POSE_DIMS

    def assemble(self, detections: DetectionResult) -> FeatureVector:
        features: FeatureVector = []

        hands = detections.hands[:self._max_hands]
        for hand in hands:
            features.extend(self._hand_features(hand))

        if self._pad_hands:
            features.extend([0.0] * (HAND_DIMS * (self._max_hands - len(hands))))

        pose = detections.poses[0] if detections.poses else None
        features.extend(self._pose_features(pose))
        return features

    def relayout(self, vector: Sequence[float]) -> FeatureVector:
        """Convert an unpadded vector (63·n + 12) into the padded layout.

        Lengths that do not match the unpadded layout are returned as-is;
        the classifier's truncated distance still tolerates them.
        """
        vector = [float(v) for v in vector]
        if not self._pad_hands:
            return vector
        hand_block = len(vector) - POSE_DIMS
        if hand_block < 0 or hand_block % HAND_DIMS:
            return vector
        n_hands = hand_block // HAND_DIMS
        if n_hands >= self._max_hands:
            return vector
        padding = [0.0] * (HAND_DIMS * (self._max_hands - n_hands))
        return vector[:hand_block] + padding + vector[hand_block:]

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _hand_features(hand: Sequence[LandmarkPoint]) -> List[float]:
        out = []
        for i in range(HAND_POINTS):
            if i < len(hand):
                lm = hand[i]
                out.extend((float(lm.x), float(lm.y), float(lm.z)))
            else:
                out.extend((0.0, 0.0, 0.0))
        return out

    @staticmethod
    def _pose_features(pose) -> List[float]:
        if not pose:
            return [0.0] * POSE_DIMS
        out = []
        for idx in POSE_INDICES:
            lm = pose[idx] if idx < len(pose) else None
            if lm is None:
                out.extend((0.0, 0.0, 0.0, 0.0))
            else:
                out.extend((float(lm.x), float(lm.y), float(lm.z),
                            float(lm.visibility or 0.0)))
        return out
