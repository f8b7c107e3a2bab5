"""
Speech emission gate for stabilized gesture labels.

Two phases, Idle and Speaking (see core.types.SPEECH_TRANSITIONS):
    - A non-empty label is spoken only while Idle, and only if it differs
      from the last spoken text or the repeat cooldown has elapsed.
    - Delivery (translate -> display -> transcript -> speak) runs as one
      tracked task; its completion or failure always returns to Idle.
    - Labels arriving while Speaking are dropped, never queued, so at most
      one utterance is ever outstanding.
    - An empty tally clears the display and re-arms the last spoken text,
      so the same gesture is spoken again after a "no gesture" gap.
"""

import asyncio
import logging
from typing import List, Optional

from core.events import EventBus, Events
from core.types import SpeechState, SpeechTrigger, VoteTally
from modules.speech.languages import DEFAULT_LANGUAGE, is_supported
from modules.speech.synthesizer import Utterance, Voice, select_voice

logger = logging.getLogger(__name__)


class SpeechDebouncer:
    """Debounced, non-overlapping speech output for a session."""

    def __init__(self, config: dict, state: SpeechState, synthesizer,
                 translator=None, ledger=None, event_bus=None):
        self._repeat_cooldown_ms = config.get("repeat_cooldown_ms", 1500)
        self._default_language = config.get("default_language", DEFAULT_LANGUAGE)
        self._rate = config.get("rate", 0.9)
        self._pitch = config.get("pitch", 1.0)
        self._volume = config.get("volume", 1.0)
        self._voice_wait_ms = config.get("voice_wait_ms", 1000)
        self._voice_poll_ms = config.get("voice_poll_ms", 100)
        self._settle_ms = config.get("cancel_settle_ms", 100)

        self._state = state
        self._synth = synthesizer
        self._translator = translator
        self._ledger = ledger
        self._bus = event_bus or EventBus()

        self._pending: Optional[asyncio.Task] = None
        self._last_label = ""

    @property
    def state(self) -> SpeechState:
        return self._state

    def should_speak(self, label: str, now: float) -> bool:
        if not label or self._state.is_speaking:
            return False
        if label != self._state.last_spoken_text:
            return True
        return now - self._state.last_spoken_at >= self._repeat_cooldown_ms

    def offer(self, tally: VoteTally, now: float) -> bool:
        """Feed one vote tick. Must be called from the running event loop.

        Returns:
            True if the label was accepted for speaking.
        """
        if tally.is_empty:
            self._clear()
            return False

        self._last_label = tally.label
        if not self.should_speak(tally.label, now):
            return False

        self._state.fire(SpeechTrigger.SPEAK)
        self._state.last_spoken_text = tally.label
        self._state.last_spoken_at = now
        self._pending = asyncio.ensure_future(self._deliver(tally.label, tally.confidence))
        self._pending.add_done_callback(
            lambda task, label=tally.label: self._on_delivery_done(task, label))
        return True

    def set_target_language(self, code: str):
        if not is_supported(code):
            raise ValueError(f"Unsupported language: {code}")
        self._state.target_language = code
        logger.info("Speech language set to %s", code)

    def cancel(self):
        """Abort pending delivery and any in-flight utterance."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        try:
            self._synth.cancel()
        except Exception as e:
            logger.warning("Speech cancel failed: %s", e)

    async def drain(self):
        """Wait for the pending delivery (if any) to finish."""
        if self._pending is not None:
            await asyncio.gather(self._pending, return_exceptions=True)

    # =========================================================================
    # Delivery
    # =========================================================================

    def _clear(self):
        self._state.display_text = ""
        if self._last_label:
            self._state.last_spoken_text = ""
        self._last_label = ""

    def _on_delivery_done(self, task: asyncio.Task, label: str):
        # A task cancelled before its first step never reaches _deliver's finally
        if task is not self._pending or not task.cancelled() or not self._state.is_speaking:
            return
        logger.debug("Speech delivery for %r cancelled before it started", label)
        self._state.fire(SpeechTrigger.ERROR)
        self._bus.emit(Events.SPEECH_FINISHED, label=label, ok=False)

    async def _deliver(self, label: str, confidence: Optional[float] = None):
        language = self._state.target_language
        trigger = SpeechTrigger.ERROR
        try:
            text = label
            if language != self._default_language and self._translator is not None:
                text = await asyncio.to_thread(self._translator.translate, label, language)
            self._state.display_text = text

            if text and self._ledger is not None:
                word = self._ledger.append(text)
                if word is not None:
                    self._bus.emit(Events.TRANSCRIPT_UPDATED, word=word,
                                   transcript=self._ledger.render())

            self._bus.emit(Events.SPEECH_STARTED, label=label, text=text, language=language,
                           confidence=confidence)
            await self._speak(text, language)
            trigger = SpeechTrigger.DONE
        except asyncio.CancelledError:
            logger.debug("Speech delivery for %r cancelled", label)
            raise
        except Exception as e:
            logger.warning("Speech output failed for %r: %s", label, e)
        finally:
            self._state.fire(trigger)
            self._bus.emit(Events.SPEECH_FINISHED, label=label,
                           ok=trigger is SpeechTrigger.DONE)

    async def _speak(self, text: str, language: str):
        self._synth.cancel()
        await asyncio.sleep(self._settle_ms / 1000.0)
        voices = await self._wait_for_voices()
        voice = select_voice(voices, language)
        await self._synth.speak(Utterance(
            text=text,
            language=language,
            voice_id=voice.id if voice else None,
            rate=self._rate,
            pitch=self._pitch,
            volume=self._volume,
        ))

    async def _wait_for_voices(self) -> List[Voice]:
        voices = self._synth.voices()
        waited = 0.0
        while not voices and waited < self._voice_wait_ms:
            await asyncio.sleep(self._voice_poll_ms / 1000.0)
            waited += self._voice_poll_ms
            voices = self._synth.voices()
        if not voices:
            logger.debug("No voices available after %.0fms, using engine default", waited)
        return voices
