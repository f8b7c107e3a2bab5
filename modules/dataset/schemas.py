"""
Wire shapes of the gesture dataset and its backend.

Field names on the wire are camelCase; Python attributes are snake_case.
Every model accepts either form on input (populate_by_name).
"""

import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.errors import DatasetFormatError
from modules.detection.feature_assembler import HAND_DIMS, MAX_HANDS, POSE_DIMS

DATASET_VERSION = "1.0"

Dataset = Dict[str, List[List[float]]]

# 0, 1 or 2 hands followed by the pose block
VALID_VECTOR_LENGTHS = frozenset(n * HAND_DIMS + POSE_DIMS for n in range(MAX_HANDS + 1))


def find_malformed_label(dataset: Dataset) -> Optional[str]:
    """First label holding a vector no frame could have produced, if any."""
    for label, examples in dataset.items():
        if any(len(vector) not in VALID_VECTOR_LENGTHS for vector in examples):
            return label
    return None


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DatasetMetadata(_WireModel):
    export_date: str = Field(alias="exportDate")
    total_gestures: int = Field(alias="totalGestures")
    total_examples: int = Field(alias="totalExamples")
    version: str = DATASET_VERSION


class DatasetDocument(_WireModel):
    """Exported dataset file: metadata plus the label -> examples mapping."""
    metadata: Optional[DatasetMetadata] = None
    dataset: Dataset

    @classmethod
    def build(cls, dataset: Dataset, exported_at: datetime = None) -> "DatasetDocument":
        exported_at = exported_at or datetime.now(timezone.utc)
        return cls(
            metadata=DatasetMetadata(
                export_date=exported_at.isoformat().replace("+00:00", "Z"),
                total_gestures=len(dataset),
                total_examples=sum(len(v) for v in dataset.values()),
            ),
            dataset=dataset,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class Conflict(_WireModel):
    label: str
    existing_count: int = Field(alias="existingCount")
    incoming_count: int = Field(alias="incomingCount")


class ConflictReport(_WireModel):
    has_conflicts: bool = Field(alias="hasConflicts")
    conflicts: List[Conflict] = Field(default_factory=list)
    new_labels: List[str] = Field(default_factory=list, alias="newLabels")


class MergeRequest(_WireModel):
    dataset: Dataset
    replacements: List[str] = Field(default_factory=list)
    rejections: List[str] = Field(default_factory=list)


class MergeResult(_WireModel):
    added_count: int = Field(0, alias="addedCount")
    replaced_count: int = Field(0, alias="replacedCount")
    rejected_count: int = Field(0, alias="rejectedCount")


class GestureCount(_WireModel):
    label: str
    count: int


class DatasetStats(_WireModel):
    total_gestures: int = Field(alias="totalGestures")
    total_examples: int = Field(alias="totalExamples")
    gestures: List[GestureCount] = Field(default_factory=list)


def parse_dataset_document(text: str) -> Dataset:
    """Parse an import file: either an export document or a bare mapping.

    Raises:
        DatasetFormatError: on malformed JSON, any non-list label entry, or
            a vector whose length is not that of a 0, 1 or 2 hand frame.
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        raise DatasetFormatError("Invalid JSON file.")

    if not isinstance(parsed, dict):
        raise DatasetFormatError("Invalid JSON file.")

    dataset = parsed["dataset"] if isinstance(parsed.get("dataset"), dict) else parsed
    for label, examples in dataset.items():
        if not isinstance(examples, list):
            raise DatasetFormatError(f'Invalid data for "{label}"')

    try:
        validated = MergeRequest(dataset=dataset).dataset
    except ValidationError:
        bad = next(
            (label for label, examples in dataset.items()
             if not all(isinstance(e, list) for e in examples)),
            next(iter(dataset), ""),
        )
        raise DatasetFormatError(f'Invalid data for "{bad}"')

    bad = find_malformed_label(validated)
    if bad is not None:
        raise DatasetFormatError(f'Invalid data for "{bad}"')
    return validated
