"""
Shared domain types for the gesture-to-speech pipeline.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

# A flattened per-frame encoding of landmarks.
FeatureVector = List[float]

# label -> ordered list of feature vectors
ExampleMapping = Mapping[str, Sequence[Sequence[float]]]


# =============================================================================
# Landmarks
# =============================================================================

class LandmarkPoint:
    """Normalized keypoint reported by a hand/pose detector.

    Uses __slots__ since thousands are created per second.
    """

    __slots__ = ("x", "y", "z", "visibility")

    def __init__(self, x: float, y: float, z: float = 0.0,
                 visibility: Optional[float] = None):
        self.x = x
        self.y = y
        self.z = z
        self.visibility = visibility

    def __repr__(self):
        return f"LandmarkPoint({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


@dataclass
class DetectionResult:
    """One frame's detections: zero or more hands, zero or more poses."""
    hands: List[List[LandmarkPoint]] = field(default_factory=list)
    poses: List[List[LandmarkPoint]] = field(default_factory=list)

    @property
    def hand_count(self) -> int:
        return len(self.hands)

    @property
    def has_pose(self) -> bool:
        return bool(self.poses)


# =============================================================================
# Classification & voting
# =============================================================================

@dataclass(frozen=True)
class Classification:
    """k-NN output for a single feature vector."""
    label: str
    confidence: float
    votes: int = 0


@dataclass(frozen=True)
class VoteEntry:
    label: str
    timestamp: float


@dataclass(frozen=True)
class VoteTally:
    """Majority-vote result of one buffer tick.

    An empty label is the explicit "no gesture" state.
    """
    label: str = ""
    confidence: float = 0.0
    votes: int = 0
    total: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.label

    @classmethod
    def empty(cls) -> "VoteTally":
        return cls()


# =============================================================================
# Transcript
# =============================================================================

@dataclass(frozen=True)
class TranscriptWord:
    id: str
    text: str


# =============================================================================
# Speech state
# =============================================================================

class SpeechPhase(Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class SpeechTrigger(Enum):
    SPEAK = "speak"
    DONE = "done"
    ERROR = "error"


SPEECH_TRANSITIONS: Dict[tuple, SpeechPhase] = {
    (SpeechPhase.IDLE, SpeechTrigger.SPEAK): SpeechPhase.SPEAKING,
    (SpeechPhase.SPEAKING, SpeechTrigger.DONE): SpeechPhase.IDLE,
    (SpeechPhase.SPEAKING, SpeechTrigger.ERROR): SpeechPhase.IDLE,
}


class SpeechState:
    """Session-wide speech state, mutated only by the SpeechDebouncer.

    Transitions are looked up in SPEECH_TRANSITIONS; a trigger with no
    entry for the current phase is rejected and leaves the state untouched.
    """

    def __init__(self, target_language: str = "en"):
        self.phase = SpeechPhase.IDLE
        self.last_spoken_text = ""
        self.last_spoken_at = 0.0
        self.target_language = target_language
        self.display_text = ""

    @property
    def is_speaking(self) -> bool:
        return self.phase is SpeechPhase.SPEAKING

    def fire(self, trigger: SpeechTrigger) -> bool:
        """Apply a trigger. Returns False if the transition is not allowed."""
        next_phase = SPEECH_TRANSITIONS.get((self.phase, trigger))
        if next_phase is None:
            return False
        self.phase = next_phase
        return True

    def __repr__(self):
        return (f"SpeechState({self.phase.value}, last={self.last_spoken_text!r}, "
                f"lang={self.target_language})")


# =============================================================================
# Pipeline observation
# =============================================================================

class PipelineState:
    """Shared mutable state for the pipeline, observed by the CLI/UI.

    The loop is the only writer; readers take a snapshot().
    """

    def __init__(self):
        self.current_gesture: str = ""
        self.confidence: float = 0.0
        self.display_text: str = ""
        self.hand_count: int = 0
        self.frame_count: int = 0
        self.sampled_count: int = 0
        self.detector_failures: int = 0
        self.error: Optional[str] = None

    def snapshot(self) -> dict:
        return {
            "gesture": self.current_gesture,
            "confidence": self.confidence,
            "display_text": self.display_text,
            "hand_count": self.hand_count,
            "frame_count": self.frame_count,
            "sampled_count": self.sampled_count,
            "detector_failures": self.detector_failures,
            "error": self.error,
        }
