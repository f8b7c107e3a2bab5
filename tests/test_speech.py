"""
Tests for Speech Output: debouncing, translation and voice selection
====================================================================
"""

import asyncio
from unittest.mock import MagicMock

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.events import EventBus, Events
from core.types import SpeechPhase, SpeechState, SpeechTrigger, VoteTally
from modules.control.speech_debouncer import SpeechDebouncer
from modules.speech.languages import BCP47_TAGS, LANGUAGES, bcp47_tag, is_supported
from modules.speech.synthesizer import Pyttsx3Synthesizer, Utterance, Voice, select_voice
from modules.speech.translator import Translator
from modules.transcript.ledger import TranscriptLedger

FAST = {"cancel_settle_ms": 0, "voice_wait_ms": 0}


class FakeSynthesizer:
    """Records utterances; optionally slow or failing."""

    def __init__(self, voices=None, delay=0.0, fail=False):
        self._voices = voices or []
        self.delay = delay
        self.fail = fail
        self.spoken = []
        self.cancels = 0

    def voices(self):
        return list(self._voices)

    def cancel(self):
        self.cancels += 1

    async def speak(self, utterance):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("audio device busy")
        self.spoken.append(utterance)


class FakeTranslator:
    def __init__(self, table):
        self.table = table
        self.calls = []

    def translate(self, text, target):
        self.calls.append((text, target))
        return self.table.get((text, target), text)


def tally(label, confidence=1.0):
    return VoteTally(label=label, confidence=confidence, votes=1, total=1)


@pytest.fixture
def bus():
    bus = EventBus()
    bus.reset()
    yield bus
    bus.reset()


class TestSpeechState:
    """Transition table."""

    def test_allowed_transitions(self):
        state = SpeechState()
        assert state.fire(SpeechTrigger.SPEAK)
        assert state.is_speaking
        assert state.fire(SpeechTrigger.DONE)
        assert state.phase is SpeechPhase.IDLE

    def test_rejected_transitions(self):
        state = SpeechState()
        assert not state.fire(SpeechTrigger.DONE)
        state.fire(SpeechTrigger.SPEAK)
        assert not state.fire(SpeechTrigger.SPEAK)
        assert state.fire(SpeechTrigger.ERROR)
        assert not state.is_speaking


class TestSpeechDebouncer:
    """Test suite for the Idle/Speaking emission gate."""

    def make(self, bus, synth=None, translator=None, language="en", **config):
        ledger = TranscriptLedger()
        debouncer = SpeechDebouncer(
            dict(FAST, **config),
            SpeechState(target_language=language),
            synthesizer=synth or FakeSynthesizer(),
            translator=translator,
            ledger=ledger,
            event_bus=bus,
        )
        return debouncer, ledger

    def test_speaks_new_label(self, bus):
        synth = FakeSynthesizer()
        debouncer, ledger = self.make(bus, synth)

        async def scenario():
            assert debouncer.offer(tally("hello"), 0)
            assert debouncer.state.is_speaking
            await debouncer.drain()

        asyncio.run(scenario())
        assert [u.text for u in synth.spoken] == ["hello"]
        assert debouncer.state.phase is SpeechPhase.IDLE
        assert debouncer.state.last_spoken_text == "hello"
        assert debouncer.state.display_text == "hello"
        assert ledger.render() == "hello"

    def test_no_overlap_while_speaking(self, bus):
        """A label arriving while Speaking is dropped, not queued."""
        synth = FakeSynthesizer(delay=0.05)
        debouncer, ledger = self.make(bus, synth)

        async def scenario():
            assert debouncer.offer(tally("hello"), 0)
            await asyncio.sleep(0)
            assert not debouncer.offer(tally("bye"), 2000)
            await debouncer.drain()

        asyncio.run(scenario())
        assert [u.text for u in synth.spoken] == ["hello"]
        assert ledger.render() == "hello"

    def test_repeat_guard(self, bus):
        synth = FakeSynthesizer()
        debouncer, _ = self.make(bus, synth)

        async def scenario():
            assert debouncer.offer(tally("hello"), 0)
            await debouncer.drain()
            assert not debouncer.offer(tally("hello"), 1000)
            assert not debouncer.offer(tally("hello"), 1499)
            assert debouncer.offer(tally("hello"), 1500)
            await debouncer.drain()

        asyncio.run(scenario())
        assert len(synth.spoken) == 2

    def test_different_label_is_not_throttled(self, bus):
        synth = FakeSynthesizer()
        debouncer, ledger = self.make(bus, synth)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()
            assert debouncer.offer(tally("world"), 10)
            await debouncer.drain()

        asyncio.run(scenario())
        assert ledger.render() == "hello world"

    def test_empty_tally_rearms_repeat(self, bus):
        """A "no gesture" gap lets the same gesture be spoken again."""
        synth = FakeSynthesizer()
        debouncer, _ = self.make(bus, synth)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()
            assert not debouncer.offer(VoteTally.empty(), 1000)
            assert debouncer.state.display_text == ""
            assert debouncer.state.last_spoken_text == ""
            assert debouncer.offer(tally("hello"), 1100)
            await debouncer.drain()

        asyncio.run(scenario())
        assert len(synth.spoken) == 2

    def test_translation_used_for_display_and_speech(self, bus):
        synth = FakeSynthesizer(voices=[
            Voice("en", "English", ["en-us"]),
            Voice("es", "Spanish", ["es-es"]),
        ])
        translator = FakeTranslator({("hello", "es"): "hola"})
        debouncer, ledger = self.make(bus, synth, translator, language="es")

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()

        asyncio.run(scenario())
        utterance = synth.spoken[0]
        assert utterance.text == "hola"
        assert utterance.language == "es"
        assert utterance.voice_id == "es"
        assert debouncer.state.display_text == "hola"
        assert ledger.render() == "hola"
        # the repeat guard compares labels, not translations
        assert debouncer.state.last_spoken_text == "hello"

    def test_default_language_skips_translation(self, bus):
        translator = FakeTranslator({})
        debouncer, _ = self.make(bus, translator=translator)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()

        asyncio.run(scenario())
        assert translator.calls == []

    def test_speech_failure_returns_to_idle(self, bus):
        finished = []
        bus.subscribe(Events.SPEECH_FINISHED, lambda **kw: finished.append(kw))
        synth = FakeSynthesizer(fail=True)
        debouncer, ledger = self.make(bus, synth)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()
            assert not debouncer.state.is_speaking
            assert debouncer.offer(tally("bye"), 10)
            await debouncer.drain()

        asyncio.run(scenario())
        assert finished[0] == {"label": "hello", "ok": False}
        assert ledger.render() == "hello bye"

    def test_cancel_stops_pending_delivery(self, bus):
        synth = FakeSynthesizer(delay=5.0)
        debouncer, _ = self.make(bus, synth)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await asyncio.sleep(0.01)
            debouncer.cancel()
            await debouncer.drain()

        asyncio.run(scenario())
        assert synth.spoken == []
        assert synth.cancels >= 2
        assert debouncer.state.phase is SpeechPhase.IDLE

    def test_cancel_before_delivery_starts(self, bus):
        """Cancelling a delivery that never ran still returns to Idle."""
        finished = []
        bus.subscribe(Events.SPEECH_FINISHED, lambda **kw: finished.append(kw))
        synth = FakeSynthesizer()
        debouncer, ledger = self.make(bus, synth)

        async def scenario():
            assert debouncer.offer(tally("hello"), 0)
            debouncer.cancel()
            await debouncer.drain()
            assert not debouncer.state.is_speaking
            assert debouncer.offer(tally("bye"), 10)
            await debouncer.drain()

        asyncio.run(scenario())
        assert [u.text for u in synth.spoken] == ["bye"]
        assert ledger.render() == "bye"
        assert finished == [{"label": "hello", "ok": False}, {"label": "bye", "ok": True}]

    def test_events_emitted(self, bus):
        started, updated = [], []
        bus.subscribe(Events.SPEECH_STARTED, lambda **kw: started.append(kw))
        bus.subscribe(Events.TRANSCRIPT_UPDATED, lambda **kw: updated.append(kw))
        debouncer, _ = self.make(bus)

        async def scenario():
            debouncer.offer(tally("hello", confidence=0.75), 0)
            await debouncer.drain()

        asyncio.run(scenario())
        assert started == [{"label": "hello", "text": "hello", "language": "en",
                            "confidence": 0.75}]
        assert updated[0]["transcript"] == "hello"

    def test_waits_for_voices(self, bus):
        synth = FakeSynthesizer()
        synth.voices = MagicMock(side_effect=[[], [Voice("v1", "Voice", ["en-us"])]])
        debouncer, _ = self.make(bus, synth, voice_wait_ms=100, voice_poll_ms=1)

        async def scenario():
            debouncer.offer(tally("hello"), 0)
            await debouncer.drain()

        asyncio.run(scenario())
        assert synth.spoken[0].voice_id == "v1"

    def test_set_target_language(self, bus):
        debouncer, _ = self.make(bus)
        debouncer.set_target_language("fr")
        assert debouncer.state.target_language == "fr"
        with pytest.raises(ValueError):
            debouncer.set_target_language("xx")

    def test_drain_without_pending(self, bus):
        debouncer, _ = self.make(bus)
        asyncio.run(debouncer.drain())


class TestTranslator:
    """Best-effort translation."""

    def make(self, translate=None, **config):
        backend = MagicMock()
        backend.translate.side_effect = translate or (lambda text: text.upper())
        factory = MagicMock(return_value=backend)
        return Translator(config, backend_factory=factory), factory

    def test_translates(self):
        translator, factory = self.make()
        assert translator.translate("hello", "es") == "HELLO"
        factory.assert_called_once_with(source="en", target="es")

    def test_chinese_code_mapped(self):
        translator, factory = self.make()
        translator.translate("hello", "zh")
        factory.assert_called_once_with(source="en", target="zh-CN")

    def test_source_language_passthrough(self):
        translator, factory = self.make()
        assert translator.translate("hello", "en") == "hello"
        factory.assert_not_called()

    def test_empty_text_passthrough(self):
        translator, factory = self.make()
        assert translator.translate("  ", "es") == "  "
        factory.assert_not_called()

    def test_disabled(self):
        translator, factory = self.make(enabled=False)
        assert translator.translate("hello", "es") == "hello"
        factory.assert_not_called()

    def test_failure_passthrough(self):
        def boom(text):
            raise ConnectionError("offline")
        translator, _ = self.make(translate=boom)
        assert translator.translate("hello", "es") == "hello"

    def test_cached(self):
        translator, factory = self.make()
        translator.translate("hello", "es")
        translator.translate("hello", "es")
        assert factory.call_count == 1


class TestVoiceSelection:
    """Exact tag -> code prefix -> family -> first voice."""

    @pytest.fixture
    def voices(self):
        return [
            Voice("v-en-gb", "British", ["en-gb"]),
            Voice("v-en-us", "American", ["en_US"]),
            Voice("v-pt-pt", "Portuguese", ["pt-pt"]),
            Voice("v-zh", "Mandarin", [b"\x05zh"]),
        ]

    def test_exact_tag(self, voices):
        assert select_voice(voices, "en").id == "v-en-us"

    def test_code_prefix(self, voices):
        assert select_voice(voices, "zh").id == "v-zh"

    def test_regional_variant_fallback(self, voices):
        # pt-BR is not available, pt-PT is
        assert select_voice(voices, "pt").id == "v-pt-pt"

    def test_family_match_on_tag(self):
        voices = [Voice("a", "A", ["de-de"]), Voice("b", "B", ["zh-yue"])]
        assert select_voice(voices, "zh-TW").id == "b"

    def test_first_voice_fallback(self, voices):
        assert select_voice(voices, "ja").id == "v-en-gb"

    def test_no_voices(self):
        assert select_voice([], "en") is None


class TestPyttsx3Synthesizer:
    """pyttsx3 engine wrapper with a mocked engine."""

    @pytest.fixture
    def engine(self):
        engine = MagicMock()
        raw_voice = MagicMock()
        raw_voice.id = "english"
        raw_voice.name = "English"
        raw_voice.languages = [b"\x05en-us"]
        properties = {"rate": 200, "voices": [raw_voice]}
        engine.getProperty.side_effect = lambda name: properties[name]
        return engine

    def test_voices(self, engine):
        synth = Pyttsx3Synthesizer(engine=engine)
        assert synth.voices() == [Voice("english", "English", ["en-us"])]

    def test_speak_sets_properties(self, engine):
        synth = Pyttsx3Synthesizer(engine=engine)
        asyncio.run(synth.speak(Utterance("hello", voice_id="english", rate=0.9, volume=0.5)))
        engine.setProperty.assert_any_call("rate", 180)
        engine.setProperty.assert_any_call("volume", 0.5)
        engine.setProperty.assert_any_call("voice", "english")
        engine.say.assert_called_once_with("hello")
        engine.runAndWait.assert_called_once()

    def test_default_pitch_left_alone(self, engine):
        synth = Pyttsx3Synthesizer(engine=engine)
        asyncio.run(synth.speak(Utterance("hello")))
        assert all(c.args[0] != "pitch" for c in engine.setProperty.call_args_list)

    def test_pitch_scaled(self, engine):
        synth = Pyttsx3Synthesizer(engine=engine)
        asyncio.run(synth.speak(Utterance("hello", pitch=1.2)))
        engine.setProperty.assert_any_call("pitch", 60)

    def test_cancel_stops_engine(self, engine):
        Pyttsx3Synthesizer(engine=engine).cancel()
        engine.stop.assert_called_once()


class TestLanguages:

    def test_catalogue(self):
        assert len(LANGUAGES) == 25
        assert set(BCP47_TAGS) == set(LANGUAGES)

    def test_lookup(self):
        assert bcp47_tag("ja") == "ja-JP"
        assert is_supported("es")
        assert not is_supported("xx")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
