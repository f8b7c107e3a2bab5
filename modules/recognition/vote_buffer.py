"""
Time-windowed majority voting over accepted classifications.

Every confident classification drops a vote into the buffer. On each tick
votes older than the window are pruned and the majority label among the
survivors is reported. A gesture therefore has to dominate the last
second of votes before anything downstream sees it.
"""

import logging
from collections import Counter, deque
from typing import Deque, List

from core.types import VoteEntry, VoteTally

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 0.6
WINDOW_DURATION_MS = 1000.0


class VoteBuffer:
    """Sliding window of VoteEntry; the sole owner and mutator of its entries."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._threshold = config.get("accept_threshold", ACCEPT_THRESHOLD)
        self._window_ms = config.get("window_duration_ms", WINDOW_DURATION_MS)
        self._entries: Deque[VoteEntry] = deque()

    def accept(self, label: str, confidence: float, timestamp: float) -> bool:
        """Record a vote if the classification cleared the threshold.

        Returns:
            True if the vote was added.
        """
        if not label or confidence <= self._threshold:
            return False
        self._entries.append(VoteEntry(label=label, timestamp=timestamp))
        return True

    def tick(self, now: float) -> VoteTally:
        """Prune expired votes and report the majority label.

        Entries with timestamp <= now - window are dropped. Ties go to the
        label that was voted for first.
        """
        cutoff = now - self._window_ms
        self._entries = deque(e for e in self._entries if e.timestamp > cutoff)

        if not self._entries:
            return VoteTally.empty()

        counts = Counter(e.label for e in self._entries)
        label, votes = counts.most_common(1)[0]
        total = len(self._entries)
        tally = VoteTally(label=label, confidence=votes / total, votes=votes, total=total)
        logger.debug("Vote tick: %s (%d/%d) from %s", label, votes, total, dict(counts))
        return tally

    def reset(self):
        self._entries.clear()

    @property
    def entries(self) -> List[VoteEntry]:
        return list(self._entries)

    @property
    def window_ms(self) -> float:
        return self._window_ms

    @property
    def threshold(self) -> float:
        return self._threshold

    def __len__(self):
        return len(self._entries)
