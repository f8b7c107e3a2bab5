"""
Interactive gesture example collection.
Captures feature vectors for user-chosen labels and saves them to the
dataset backend once every label has enough examples.
"""

import asyncio
import logging
import time
from typing import Dict, Sequence

import cv2

from core.errors import CollectionError, DatasetBackendError
from core.types import DetectionResult
from modules.dataset.store import MIN_EXAMPLES_PER_LABEL, ExampleStore

logger = logging.getLogger(__name__)

_WINDOW = "Gesture Collector"


class ExampleCollector:
    """Accumulates labeled examples for one collection session."""

    def __init__(self, assembler, min_examples: int = MIN_EXAMPLES_PER_LABEL):
        self._assembler = assembler
        self._min_examples = min_examples
        self._store = ExampleStore(assembler)

    @property
    def store(self) -> ExampleStore:
        return self._store

    def add_example(self, label: str, detections: DetectionResult) -> int:
        """Record one example of `label` from a frame's detections.

        Returns:
            Number of examples now held for the label.

        Raises:
            CollectionError: empty label or no hand in the frame.
        """
        label = (label or "").strip()
        if not label:
            raise CollectionError("Please enter a label")
        if detections.hand_count == 0:
            raise CollectionError("No hand detected. Please show your hand to the camera.")

        count = self._store.add(label, self._assembler.assemble(detections))
        logger.info("Added example %d for \"%s\"", count, label)
        return count

    def save(self, client) -> int:
        """Push the collected examples to the backend and reset the session.

        Returns:
            Number of examples saved.

        Raises:
            CollectionError: nothing collected, or a label is under the minimum.
            DatasetBackendError: the backend rejected or could not be reached.
        """
        if self._store.is_empty:
            raise CollectionError("No data to save. Add some examples first.")
        short = self._store.insufficient_labels(self._min_examples)
        if short:
            raise CollectionError(
                'Warning: "%s" has fewer than %d examples.' % ('", "'.join(short), self._min_examples)
            )

        total = self._store.total_examples
        client.save(self._store.to_dataset())
        self._store.clear()
        logger.info("Dataset saved successfully! %d examples stored.", total)
        return total

    def get_status(self) -> Dict[str, int]:
        return self._store.counts()

    def print_status(self):
        logger.info("=" * 50)
        logger.info("COLLECTION STATUS  (%d examples)", self._store.total_examples)
        logger.info("-" * 30)
        for label, count in self._store.counts().items():
            marker = "" if count >= self._min_examples else "  (need %d)" % self._min_examples
            logger.info("  %-15s %4d%s", label, count, marker)
        logger.info("=" * 50)

    async def run_interactive(self, camera, detector, labels: Sequence[str], client=None,
                              token=None):
        """Live collection session.

        Key bindings:
            1-9: Select label
            space: Capture an example of the selected label
            s: Save to backend
            p: Print status
            q: Quit
        """
        if not labels:
            raise CollectionError("Please enter a label")
        keys = {ord(str(i + 1)): label for i, label in enumerate(labels[:9])}
        current = labels[0]

        logger.info("Starting interactive collection")
        logger.info("Keys: 1-9 select label, space=capture, s=save, p=status, q=quit")
        for key_code, name in sorted(keys.items()):
            logger.info("  %s -> %s", chr(key_code), name)

        detections = DetectionResult()
        while token is None or not token.cancelled:
            frame_id, frame = camera.read()
            if frame is None:
                await asyncio.sleep(0.01)
                continue

            try:
                detections = await detector.detect(frame, time.monotonic() * 1000.0)
            except Exception as e:
                logger.warning("Detection failed on frame %s: %s", frame_id, e)
                detections = DetectionResult()

            display = frame.copy()
            cv2.putText(display, f"Label: {current}  hands: {detections.hand_count}",
                        (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
            y_offset = 60
            for label, count in self._store.counts().items():
                cv2.putText(display, f"{label}: {count}", (10, y_offset),
                            cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 0), 1)
                y_offset += 20
            cv2.putText(display, "1-9 label, space=capture, s=save, q=quit",
                        (10, display.shape[0] - 10),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)
            cv2.imshow(_WINDOW, display)
            key = cv2.waitKey(1) & 0xFF

            if key == ord("q"):
                break
            elif key in keys:
                current = keys[key]
                logger.info("Selected label: %s", current)
            elif key == ord(" "):
                try:
                    self.add_example(current, detections)
                except CollectionError as e:
                    logger.warning("%s", e)
            elif key == ord("p"):
                self.print_status()
            elif key == ord("s") and client is not None:
                try:
                    self.save(client)
                except (CollectionError, DatasetBackendError) as e:
                    logger.warning("%s", e)
            await asyncio.sleep(0)

        cv2.destroyWindow(_WINDOW)
        self.print_status()
