"""
Text-to-speech output via pyttsx3, plus voice selection.

pyttsx3 is blocking (runAndWait), so speak() runs it in a worker thread
and returns once the utterance has finished or failed. The caller is
expected to keep at most one utterance outstanding.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pyttsx3

from modules.speech.languages import bcp47_tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    languages: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Utterance:
    """A single speech request. Rate and pitch are relative to the voice default."""
    text: str
    language: str = "en"
    voice_id: Optional[str] = None
    rate: float = 0.9
    pitch: float = 1.0
    volume: float = 1.0


def _normalize_tag(tag) -> str:
    # espeak reports languages as bytes with a leading priority byte, e.g. b"\x05en-us"
    if isinstance(tag, bytes):
        tag = tag.decode("utf-8", errors="ignore")
    tag = str(tag).strip().lstrip("\x00\x01\x02\x03\x04\x05\x06\x07\x08\x09")
    return tag.replace("_", "-").lower()


def select_voice(voices: Sequence[Voice], language: str) -> Optional[Voice]:
    """Pick a voice for a language code.

    Preference: exact BCP-47 tag, then any tag starting with the code,
    then the tag's language family, then the first available voice.
    """
    if not voices:
        return None

    tag = bcp47_tag(language).lower()
    code = language.lower()
    family = tag.split("-")[0]

    def tags(voice):
        return [_normalize_tag(t) for t in voice.languages]

    for voice in voices:
        if tag in tags(voice):
            return voice
    for voice in voices:
        if any(t.startswith(code) for t in tags(voice)):
            return voice
    for voice in voices:
        if any(t.split("-")[0] == family for t in tags(voice)):
            return voice
    return voices[0]


class Pyttsx3Synthesizer:
    """Speech synthesis backend wrapping a pyttsx3 engine."""

    def __init__(self, config: dict = None, engine=None):
        config = config or {}
        self._engine = engine or pyttsx3.init(config.get("driver"))
        self._base_rate = config.get("base_rate_wpm") or self._engine.getProperty("rate") or 200
        self._lock = threading.Lock()
        self._pitch_supported = True

    def voices(self) -> List[Voice]:
        raw = self._engine.getProperty("voices") or []
        return [
            Voice(id=v.id, name=getattr(v, "name", v.id) or v.id,
                  languages=[_normalize_tag(t) for t in (getattr(v, "languages", None) or [])])
            for v in raw
        ]

    def cancel(self):
        """Stop any in-flight utterance."""
        self._engine.stop()

    async def speak(self, utterance: Utterance):
        await asyncio.to_thread(self._say, utterance)

    def _say(self, utterance: Utterance):
        with self._lock:
            engine = self._engine
            engine.setProperty("rate", int(self._base_rate * utterance.rate))
            engine.setProperty("volume", utterance.volume)
            if utterance.voice_id:
                engine.setProperty("voice", utterance.voice_id)
            # 1.0 keeps the driver's own default pitch (espeak: 50 on 0-99)
            if self._pitch_supported and utterance.pitch != 1.0:
                try:
                    engine.setProperty("pitch", int(50 * utterance.pitch))
                except KeyError:
                    self._pitch_supported = False
                    logger.debug("Speech driver has no pitch control")
            engine.say(utterance.text)
            engine.runAndWait()
