"""
Structured logging with speech emission event logging.
"""

import os
import logging
import logging.handlers
import time

from core.events import Events


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure structured logging for the application."""
    # Clean console format, compact and readable
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    # Verbose format for log file
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-25s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class EmissionLogger:
    """Records every spoken emission and logs it on the speech_events logger."""

    def __init__(self, max_history: int = 500):
        self.logger = logging.getLogger("speech_events")
        self._history = []
        self._max_history = max_history

    def log_emission(self, label, text=None, language="en", confidence=None):
        """Log a label accepted for speaking."""
        entry = {
            "timestamp": time.time(),
            "label": label,
            "text": text if text is not None else label,
            "language": language,
            "confidence": confidence,
        }
        self._history.append(entry)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        self.logger.info(
            "Spoken: %-15s | Text: %-15s | Lang: %-3s | Confidence: %s",
            label,
            entry["text"],
            language,
            f"{confidence:.2f}" if confidence is not None else "N/A",
        )

    def log_speech_result(self, label, success=True):
        """Log the end of an utterance."""
        self.logger.info("Speech: %-15s | Success: %s", label, success)

    def attach(self, bus):
        """Subscribe to speech events on an EventBus."""
        bus.subscribe(Events.SPEECH_STARTED, self._on_started)
        bus.subscribe(Events.SPEECH_FINISHED, self._on_finished)

    def _on_started(self, label=None, text=None, language="en", confidence=None, **kwargs):
        self.log_emission(label, text, language, confidence)

    def _on_finished(self, label=None, ok=True, **kwargs):
        self.log_speech_result(label, ok)

    def get_history(self, last_n=None):
        """Get recent emission history."""
        if last_n:
            return self._history[-last_n:]
        return self._history.copy()

    @property
    def total_emissions(self):
        return len(self._history)
