"""
k-nearest-neighbor gesture classification against a labeled example store.

Brute force: every stored vector is scored on every call. At the intended
data sizes (hundreds of examples) this is well under a millisecond and
needs no index.
"""

import logging
from collections import Counter
from typing import List, Optional, Sequence, Tuple

import numpy as np

from core.types import Classification, ExampleMapping

logger = logging.getLogger(__name__)

DEFAULT_K = 3


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance over the first min(len(a), len(b)) dimensions."""
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    va = np.asarray(a[:n], dtype=np.float64)
    vb = np.asarray(b[:n], dtype=np.float64)
    return float(np.linalg.norm(va - vb))


class NearestNeighborClassifier:
    """Stateless k-NN scorer. The example store is owned by the caller."""

    def __init__(self, k: int = DEFAULT_K):
        if k < 1:
            raise ValueError("k must be >= 1, got %d" % k)
        self._k = k

    @property
    def k(self) -> int:
        return self._k

    def classify(self, query: Sequence[float], store: ExampleMapping,
                 k: Optional[int] = None) -> Optional[Classification]:
        """Classify `query` by majority vote among its k nearest examples.

        Returns:
            Classification, or None if the store holds no examples.
            Confidence is votes_for_winner / k.
        """
        k = k or self._k
        distances = self.rank(query, store)
        if not distances:
            return None

        nearest = distances[:k]
        # most_common keeps first-encountered order among equal counts
        votes = Counter(label for label, _ in nearest)
        label, count = votes.most_common(1)[0]
        return Classification(label=label, confidence=count / k, votes=count)

    @staticmethod
    def rank(query: Sequence[float], store: ExampleMapping) -> List[Tuple[str, float]]:
        """All (label, distance) pairs, nearest first.

        The sort is stable, so equal distances keep store iteration order.
        """
        distances = []
        for label, examples in store.items():
            for example in examples:
                distances.append((label, euclidean_distance(query, example)))
        distances.sort(key=lambda pair: pair[1])
        return distances
