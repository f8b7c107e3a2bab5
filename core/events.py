"""
Lightweight event bus for decoupled inter-module communication.

The pipeline publishes what it recognizes and speaks; the CLI, loggers and
any UI subscribe without the pipeline knowing about them.

Usage:
    bus = EventBus()
    bus.subscribe(Events.GESTURE_STABLE, my_handler)
    bus.emit(Events.GESTURE_STABLE, label="hello", confidence=0.67)
"""

import time
import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Dispatch is synchronous and ordered by priority. A failing handler is
    logged and never propagates into the publisher.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern, one bus per application."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._lock = threading.Lock()
        self._event_history = []
        self._max_history = 100
        self._initialized = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener. Higher priority runs first."""
        with self._lock:
            self._listeners[event_name].append((priority, callback))
            self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", callback), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        with self._lock:
            self._listeners[event_name] = [
                (p, cb) for p, cb in self._listeners[event_name] if cb != callback
            ]

    def emit(self, event_name: str, **kwargs):
        """Emit an event to all registered listeners."""
        with self._lock:
            listeners = list(self._listeners.get(event_name, []))
            self._event_history.append({
                "event": event_name,
                "time": time.time(),
                "data_keys": list(kwargs.keys()),
            })
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history:]

        for _, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", callback), e)

    def get_history(self, last_n: int = 10) -> list:
        with self._lock:
            return self._event_history[-last_n:]

    def reset(self):
        """Reset singleton state (for testing)."""
        with self._lock:
            self._listeners.clear()
            self._event_history.clear()


class Events:
    """Standard event names used throughout the system."""

    # Recognition
    GESTURE_ACCEPTED = "gesture_accepted"
    GESTURE_STABLE = "gesture_stable"
    GESTURE_CLEARED = "gesture_cleared"
    DETECTOR_ERROR = "detector_error"

    # Speech & transcript
    SPEECH_STARTED = "speech_started"
    SPEECH_FINISHED = "speech_finished"
    TRANSCRIPT_UPDATED = "transcript_updated"

    # Lifecycle
    SYSTEM_STARTED = "system_started"
    SYSTEM_SHUTDOWN = "system_shutdown"
