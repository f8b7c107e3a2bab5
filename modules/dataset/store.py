"""
In-memory labeled example set used by the classifier.
"""

import logging
from collections.abc import Mapping
from datetime import date
from typing import Dict, Iterator, List, Optional, Sequence

from core.types import FeatureVector
from modules.dataset.schemas import Dataset, DatasetDocument

logger = logging.getLogger(__name__)

MIN_EXAMPLES_PER_LABEL = 3


class ExampleStore(Mapping):
    """label -> list of feature vectors, insertion-ordered.

    Iteration order is label insertion order, which the classifier relies
    on to break distance ties deterministically.
    """

    def __init__(self, assembler=None):
        self._assembler = assembler
        self._examples: Dict[str, List[FeatureVector]] = {}

    def load(self, dataset: Dataset):
        """Replace the contents with `dataset`, re-laying out legacy vectors."""
        self._examples = {}
        for label, examples in dataset.items():
            self._examples[label] = [self._normalize(v) for v in examples]
        logger.info("Example store loaded: %d gestures, %d examples",
                    len(self._examples), self.total_examples)

    def add(self, label: str, vector: Sequence[float]) -> int:
        """Append one example; returns the new count for that label."""
        examples = self._examples.setdefault(label, [])
        examples.append(self._normalize(vector))
        return len(examples)

    def remove(self, label: str) -> bool:
        return self._examples.pop(label, None) is not None

    def clear(self):
        self._examples.clear()

    @property
    def total_examples(self) -> int:
        return sum(len(v) for v in self._examples.values())

    @property
    def is_empty(self) -> bool:
        return self.total_examples == 0

    def counts(self) -> Dict[str, int]:
        return {label: len(v) for label, v in self._examples.items()}

    def insufficient_labels(self, minimum: int = MIN_EXAMPLES_PER_LABEL) -> List[str]:
        return [label for label, v in self._examples.items() if len(v) < minimum]

    def to_dataset(self) -> Dataset:
        return {label: [list(v) for v in examples] for label, examples in self._examples.items()}

    def to_document(self) -> DatasetDocument:
        return DatasetDocument.build(self.to_dataset())

    @staticmethod
    def export_filename(day: Optional[date] = None) -> str:
        day = day or date.today()
        return f"gesture-dataset-{day.isoformat()}.json"

    def _normalize(self, vector: Sequence[float]) -> FeatureVector:
        if self._assembler is not None:
            return self._assembler.relayout(vector)
        return [float(v) for v in vector]

    def __getitem__(self, label: str) -> List[FeatureVector]:
        return self._examples[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._examples)

    def __len__(self) -> int:
        return len(self._examples)
