"""
Dataset import (validate -> conflict check -> merge) and export
(backend document first, locally built document as fallback).
"""

import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from core.errors import DatasetBackendError
from modules.dataset.schemas import (
    ConflictReport,
    Dataset,
    DatasetDocument,
    MergeResult,
    parse_dataset_document,
)
from modules.dataset.store import ExampleStore

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    report: Optional[ConflictReport]
    result: MergeResult

    @property
    def had_conflicts(self) -> bool:
        return self.report is not None and self.report.has_conflicts


def import_dataset(client, text: str, replace: Iterable[str] = ()) -> ImportOutcome:
    """Validate an import file and merge it into the backend.

    Conflicting labels listed in `replace` overwrite the backend's examples;
    every other conflicting label is rejected.

    Raises:
        DatasetFormatError: the file is malformed (nothing is sent).
        DatasetBackendError: the backend failed.
    """
    dataset = parse_dataset_document(text)
    report = client.check_conflicts(dataset)

    if not report.has_conflicts:
        result = client.merge(dataset)
        logger.info("Dataset loaded successfully! Added: %d", result.added_count)
        return ImportOutcome(report=report, result=result)

    replace = set(replace)
    replacements = [c.label for c in report.conflicts if c.label in replace]
    rejections = [c.label for c in report.conflicts if c.label not in replace]
    for conflict in report.conflicts:
        logger.info("Conflict: %-15s existing=%d incoming=%d -> %s",
                    conflict.label, conflict.existing_count, conflict.incoming_count,
                    "replace" if conflict.label in replace else "reject")
    if report.new_labels:
        logger.info("New gestures to be added: %s", ", ".join(report.new_labels))

    result = client.merge(dataset, replacements=replacements, rejections=rejections)
    logger.info("Dataset merged! Added: %d, Replaced: %d, Rejected: %d",
                result.added_count, result.replaced_count, result.rejected_count)
    return ImportOutcome(report=report, result=result)


def build_export(client, local: Optional[Dataset] = None) -> DatasetDocument:
    """Export document from the backend, or from `local` if it is unreachable."""
    if client is not None:
        try:
            document = client.share()
            logger.info("Dataset downloaded from server.")
            return document
        except DatasetBackendError as e:
            logger.warning("Backend export failed, building locally: %s", e)
    document = DatasetDocument.build(local or {})
    logger.info("Dataset built locally (backend offline).")
    return document


def export_dataset(client, directory: str, local: Optional[Dataset] = None,
                   day: Optional[date] = None) -> str:
    """Write the export document to `directory`; returns the file path."""
    document = build_export(client, local)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, ExampleStore.export_filename(day))
    with open(path, "w", encoding="utf-8") as f:
        f.write(document.to_json())
    logger.info("Dataset exported to %s (%d gestures)", path, len(document.dataset))
    return path
