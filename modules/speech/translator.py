"""
Best-effort machine translation of recognized labels.

Any failure (network, quota, unsupported language) passes the original
text through unchanged; translation must never block or break emission.
"""

import logging
from typing import Callable, Optional

from deep_translator import GoogleTranslator

from modules.speech.languages import DEFAULT_LANGUAGE, TRANSLATION_CODES

logger = logging.getLogger(__name__)


class Translator:
    """Translates from the source language via deep_translator."""

    def __init__(self, config: dict = None, backend_factory: Optional[Callable] = None):
        config = config or {}
        self._enabled = config.get("enabled", True)
        self._source = config.get("source_language", DEFAULT_LANGUAGE)
        self._backend_factory = backend_factory or GoogleTranslator
        self._cache = {}

    def translate(self, text: str, target: str) -> str:
        if not self._enabled or not text.strip() or target == self._source:
            return text

        key = (text, target)
        if key in self._cache:
            return self._cache[key]

        try:
            backend = self._backend_factory(
                source=self._source,
                target=TRANSLATION_CODES.get(target, target),
            )
            translated = backend.translate(text)
        except Exception as e:
            logger.warning("Translation to '%s' failed, using original text: %s", target, e)
            return text

        if not translated:
            return text
        self._cache[key] = translated
        logger.debug("Translated %r -> %r (%s)", text, translated, target)
        return translated
