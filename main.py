#!/usr/bin/env python3
"""
Gesture Speech - sign/gesture recognition to speech and transcript
Main application entry point.

Architecture:
    - core.RecognitionPipeline runs the detect -> classify -> vote -> speak loop
    - core.EventBus for decoupled logging and observers
    - Dataset backend for the labeled examples, with a local-file alternative

Usage:
    python main.py                          # Recognize (camera -> speech)
    python main.py --lang es                # Speak Spanish translations
    python main.py --dataset my.json        # Use a local dataset file
    python main.py collect hello thanks     # Collect examples for labels
    python main.py import data.json --replace hello
    python main.py export --output-dir out
    python main.py stats
    python main.py delete-gesture hello
    python main.py clear
"""

import sys
import os
import signal
import asyncio
import argparse
import logging

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from modules.utils.config import Config
from modules.utils.logger import setup_logging, EmissionLogger
from modules.capture.camera_manager import CameraManager
from modules.detection.landmark_detector import MediaPipeLandmarkDetector
from modules.detection.feature_assembler import FeatureAssembler
from modules.recognition.knn_classifier import NearestNeighborClassifier
from modules.recognition.vote_buffer import VoteBuffer
from modules.control.speech_debouncer import SpeechDebouncer
from modules.speech.languages import DEFAULT_LANGUAGE, LANGUAGES
from modules.speech.synthesizer import Pyttsx3Synthesizer
from modules.speech.translator import Translator
from modules.transcript.ledger import TranscriptLedger
from modules.transcript.grammar import GrammarCorrector
from modules.dataset.client import DatasetClient
from modules.dataset.collector import ExampleCollector
from modules.dataset.schemas import parse_dataset_document
from modules.dataset.store import ExampleStore
from modules.dataset.transfer import export_dataset, import_dataset

from core.errors import (
    CameraUnavailableError,
    CollectionError,
    DatasetBackendError,
    DatasetFormatError,
    DetectorInitError,
)
from core.events import EventBus, Events
from core.pipeline import RecognitionPipeline
from core.scheduler import CancellationToken
from core.types import SpeechState

logger = logging.getLogger(__name__)


class GestureSpeechApp:
    """Main application wiring the recognition pipeline and its collaborators.

    Delegates the loop to core.RecognitionPipeline and uses EventBus for
    decoupled logging.
    """

    def __init__(self, config: Config, dataset_path: str = None, output_dir: str = None):
        self._config = config
        self._dataset_path = dataset_path
        self._output_dir = output_dir or config.get("system.output_dir", "output")
        self._token = CancellationToken()

        # --- Event Bus ---
        self._bus = EventBus()

        # Dataset
        self._client = DatasetClient(config.dataset)
        self._assembler = FeatureAssembler(
            pad_hands=config.get("recognition.pad_hands", True),
            max_hands=config.get("detection.max_num_hands", 2),
        )
        self._store = ExampleStore(self._assembler)

        # Capture & detection
        self._camera = CameraManager(config.camera)
        self._detector = MediaPipeLandmarkDetector(config.detection)

        self._pipeline = None
        self._ledger = None
        self._grammar = None
        self._emissions = EmissionLogger()

        logger.info("GestureSpeechApp initialized (feature dim: %s)",
                    self._assembler.feature_dim or "variable")

    # =========================================================================
    # Recognition
    # =========================================================================

    def _build_pipeline(self):
        config = self._config
        speech_cfg = config.speech
        language = speech_cfg.get("target_language", DEFAULT_LANGUAGE)

        self._ledger = TranscriptLedger()
        self._grammar = GrammarCorrector(config.grammar)
        debouncer = SpeechDebouncer(
            speech_cfg,
            SpeechState(target_language=language),
            synthesizer=Pyttsx3Synthesizer(speech_cfg),
            translator=Translator(config.translation),
            ledger=self._ledger,
            event_bus=self._bus,
        )

        self._pipeline = RecognitionPipeline(
            camera=self._camera,
            detector=self._detector,
            assembler=self._assembler,
            classifier=NearestNeighborClassifier(config.get("recognition.k", 3)),
            store=self._store,
            votes=VoteBuffer(config.recognition),
            debouncer=debouncer,
            event_bus=self._bus,
            config={
                "require_hand": config.get("recognition.require_hand", True),
                "frame_interval_ms": config.get("loop.frame_interval_ms", 100),
                "idle_sleep_ms": config.get("loop.idle_sleep_ms", 5),
            },
        )

        # --- Wire Event Callbacks ---
        self._emissions.attach(self._bus)
        self._bus.subscribe(Events.GESTURE_STABLE, self._on_gesture_stable)
        self._bus.subscribe(Events.TRANSCRIPT_UPDATED, self._on_transcript_updated)

    def _load_examples(self):
        """Fill the example store from --dataset or the backend."""
        if self._dataset_path:
            with open(self._dataset_path, "r", encoding="utf-8") as f:
                self._store.load(parse_dataset_document(f.read()))
            return
        try:
            self._store.load(self._client.fetch())
        except DatasetBackendError as e:
            logger.warning("Could not load dataset from backend, starting empty: %s", e)
        if self._store.is_empty:
            logger.warning("No gesture examples loaded; nothing will be recognized")

    def _on_gesture_stable(self, **kwargs):
        logger.debug("Stable gesture: %s (%.2f)", kwargs.get("label"), kwargs.get("confidence", 0))

    def _on_transcript_updated(self, **kwargs):
        logger.info("Transcript: %s", kwargs.get("transcript", ""))

    async def recognize(self) -> int:
        self._load_examples()
        self._build_pipeline()
        self._pipeline.start()

        self._bus.emit(Events.SYSTEM_STARTED)
        logger.info("Recognizing... press Ctrl+C to stop")
        try:
            await self._pipeline.run(self._token)
        finally:
            self._pipeline.stop()
            await self._pipeline.debouncer.drain()
            self._bus.emit(Events.SYSTEM_SHUTDOWN)

        if len(self._ledger):
            self._ledger.save(self._output_dir, self._grammar)
        self._grammar.close()
        logger.debug("Final state: %s", self._pipeline.state.snapshot())
        logger.info("Session complete: %d frames, %d words spoken",
                    self._pipeline.frame_count, self._emissions.total_emissions)
        return 0

    # =========================================================================
    # Dataset commands
    # =========================================================================

    async def collect(self, labels) -> int:
        collector = ExampleCollector(self._assembler,
                                     self._config.get("dataset.min_examples", 3))
        self._detector.initialize()
        self._camera.open()
        try:
            await collector.run_interactive(self._camera, self._detector, labels,
                                            self._client, self._token)
        finally:
            self._camera.release()
            self._detector.close()
        if not collector.store.is_empty:
            collector.save(self._client)
        return 0

    def import_file(self, path: str, replace) -> int:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        import_dataset(self._client, text, replace=replace or ())
        return 0

    def export(self) -> int:
        local = None
        if self._dataset_path:
            with open(self._dataset_path, "r", encoding="utf-8") as f:
                local = parse_dataset_document(f.read())
        export_dataset(self._client, self._output_dir, local)
        return 0

    def stats(self) -> int:
        stats = self._client.stats()
        logger.info("=" * 50)
        logger.info("Gestures: %d   Examples: %d", stats.total_gestures, stats.total_examples)
        logger.info("-" * 30)
        for gesture in stats.gestures:
            logger.info("  %-15s %4d", gesture.label, gesture.count)
        logger.info("=" * 50)
        return 0

    def delete_gesture(self, label: str) -> int:
        self._client.delete_gesture(label)
        return 0

    def clear(self) -> int:
        self._client.clear()
        return 0

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._token.cancel()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Gesture Speech - gesture recognition to speech and transcript"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--camera", type=int, default=None, help="Camera device ID")
    parser.add_argument("--lang", choices=sorted(LANGUAGES), default=None,
                        help="Target speech language")
    parser.add_argument("--dataset", type=str, default=None,
                        help="Local dataset JSON file (instead of the backend)")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Directory for transcripts and exports")

    sub = parser.add_subparsers(dest="mode")
    sub.add_parser("recognize", help="Recognize gestures and speak them (default)")
    collect = sub.add_parser("collect", help="Collect labeled examples from the camera")
    collect.add_argument("labels", nargs="+", help="Labels to collect (keys 1-9)")
    imp = sub.add_parser("import", help="Import a dataset file into the backend")
    imp.add_argument("file")
    imp.add_argument("--replace", action="append", default=[], metavar="LABEL",
                     help="Replace the backend's examples for a conflicting label")
    sub.add_parser("export", help="Export the dataset to a JSON file")
    sub.add_parser("stats", help="Show dataset statistics")
    delete = sub.add_parser("delete-gesture", help="Delete one gesture from the backend")
    delete.add_argument("label")
    sub.add_parser("clear", help="Delete every gesture from the backend")

    args = parser.parse_args(argv)
    args.mode = args.mode or "recognize"
    return args


def _overrides(args) -> dict:
    overrides = {}
    if args.camera is not None:
        overrides["camera"] = {"device_id": args.camera}
    if args.lang is not None:
        overrides["speech"] = {"target_language": args.lang}
    return overrides


def run(app: GestureSpeechApp, args) -> int:
    if args.mode == "recognize":
        return asyncio.run(app.recognize())
    if args.mode == "collect":
        return asyncio.run(app.collect(args.labels))
    if args.mode == "import":
        return app.import_file(args.file, args.replace)
    if args.mode == "export":
        return app.export()
    if args.mode == "stats":
        return app.stats()
    if args.mode == "delete-gesture":
        return app.delete_gesture(args.label)
    if args.mode == "clear":
        return app.clear()
    raise ValueError(f"Unknown mode: {args.mode}")


def main(argv=None) -> int:
    args = parse_args(argv)

    # Load configuration
    config = Config()
    config.load(config_path=args.config, overrides=_overrides(args))

    # Setup logging
    log_cfg = config.get_section("logging")
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    logger.info("=" * 60)
    logger.info("  GESTURE SPEECH")
    logger.info("  Version: %s", config.get("system.version", "1.0.0"))
    logger.info("  Mode: %s   Language: %s", args.mode,
                config.get("speech.target_language", DEFAULT_LANGUAGE))
    logger.info("=" * 60)

    app = GestureSpeechApp(config, dataset_path=args.dataset, output_dir=args.output_dir)

    # Register signal handlers
    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    try:
        return run(app, args)
    except (CameraUnavailableError, DetectorInitError) as e:
        logger.error("Fatal: %s", e)
        return 1
    except (DatasetFormatError, DatasetBackendError, CollectionError) as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("File error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
