"""
Grammar correction for exported transcripts via LanguageTool.

Corrections are offset-based: each replaces `length` characters starting
at `offset` in the ORIGINAL text. Applying them from the highest offset
down keeps every earlier offset valid.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import language_tool_python

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Correction:
    offset: int
    length: int
    replacement: str


def apply_corrections(text: str, corrections: Iterable[Correction]) -> str:
    """Apply offset-based replacements, highest offset first."""
    corrected = text
    for c in sorted(corrections, key=lambda c: c.offset, reverse=True):
        corrected = corrected[:c.offset] + c.replacement + corrected[c.offset + c.length:]
    return corrected


def _match_length(match) -> int:
    for attr in ("errorLength", "error_length"):
        value = getattr(match, attr, None)
        if value is not None:
            return int(value)
    return 0


class GrammarCorrector:
    """Callable corrector: text in, corrected text out, never raises.

    Uses the public LanguageTool API by default so no local Java server is
    needed. The tool is created lazily on first use.
    """

    def __init__(self, config: dict = None, tool_factory: Optional[Callable] = None):
        config = config or {}
        self._enabled = config.get("enabled", True)
        self._language = config.get("language", "en-US")
        self._use_public_api = config.get("public_api", True)
        self._tool_factory = tool_factory
        self._tool = None

    def _get_tool(self):
        if self._tool is None:
            if self._tool_factory is not None:
                self._tool = self._tool_factory(self._language)
            elif self._use_public_api:
                self._tool = language_tool_python.LanguageToolPublicAPI(self._language)
            else:
                self._tool = language_tool_python.LanguageTool(self._language)
            logger.info("LanguageTool ready (%s, public_api=%s)",
                        self._language, self._use_public_api)
        return self._tool

    def corrections(self, text: str) -> List[Correction]:
        """First suggested replacement of every LanguageTool match."""
        matches = self._get_tool().check(text)
        out = []
        for match in matches:
            if match.replacements:
                out.append(Correction(offset=int(match.offset),
                                      length=_match_length(match),
                                      replacement=match.replacements[0]))
        return out

    def correct(self, text: str) -> str:
        if not self._enabled or not text.strip():
            return text
        try:
            return apply_corrections(text, self.corrections(text))
        except Exception as e:
            logger.warning("Grammar correction unavailable, keeping text as-is: %s", e)
            return text

    __call__ = correct

    def close(self):
        if self._tool is not None:
            self._tool.close()
            self._tool = None
