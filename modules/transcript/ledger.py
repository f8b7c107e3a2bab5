"""
Ordered, user-editable log of emitted words.

The recognition loop appends; a user may delete or reorder words at any
time. All mutations go through a lock so an edit can never interleave
with an append.
"""

import os
import uuid
import logging
import threading
from datetime import date
from typing import Callable, Iterator, List, Optional

from core.types import TranscriptWord

logger = logging.getLogger(__name__)


class TranscriptLedger:
    """Sequence of TranscriptWord with append-dedup, delete and move."""

    def __init__(self):
        self._words: List[TranscriptWord] = []
        self._lock = threading.Lock()

    def append(self, text: str) -> Optional[TranscriptWord]:
        """Append a word unless it repeats the immediately preceding one.

        Returns:
            The new word, or None if it was skipped.
        """
        if not text:
            return None
        with self._lock:
            if self._words and self._words[-1].text == text:
                return None
            word = TranscriptWord(id=uuid.uuid4().hex, text=text)
            self._words.append(word)
        logger.debug("Transcript += %r (%d words)", text, len(self._words))
        return word

    def delete(self, word_id: str) -> bool:
        with self._lock:
            for i, word in enumerate(self._words):
                if word.id == word_id:
                    del self._words[i]
                    return True
        return False

    def move(self, word_id: str, before_id: str) -> bool:
        """Relocate a word to sit immediately before another word.

        No-op (returns False) if either id is missing or both are the same.
        """
        if word_id == before_id:
            return False
        with self._lock:
            index = self._index_of(word_id)
            if index is None or self._index_of(before_id) is None:
                return False
            word = self._words.pop(index)
            self._words.insert(self._index_of(before_id), word)
        return True

    def clear(self):
        with self._lock:
            self._words.clear()

    def render(self) -> str:
        with self._lock:
            return " ".join(word.text for word in self._words)

    def export(self, corrector: Optional[Callable[[str], str]] = None) -> bytes:
        """Render, grammar-correct (best effort) and encode the transcript."""
        sentence = self.render()
        text = sentence
        if corrector is not None and sentence:
            try:
                text = corrector(sentence)
            except Exception as e:
                logger.warning("Grammar correction failed, exporting raw transcript: %s", e)
                text = sentence
        return text.encode("utf-8")

    @staticmethod
    def export_filename(day: Optional[date] = None) -> str:
        day = day or date.today()
        return f"transcript-{day.isoformat()}.txt"

    def save(self, directory: str, corrector: Optional[Callable[[str], str]] = None) -> str:
        """Write the exported transcript into `directory`.

        Returns:
            Path of the written file.
        """
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, self.export_filename())
        with open(path, "wb") as f:
            f.write(self.export(corrector))
        logger.info("Transcript saved to %s", path)
        return path

    @property
    def words(self) -> List[TranscriptWord]:
        with self._lock:
            return list(self._words)

    def _index_of(self, word_id: str) -> Optional[int]:
        for i, word in enumerate(self._words):
            if word.id == word_id:
                return i
        return None

    def __len__(self):
        with self._lock:
            return len(self._words)

    def __iter__(self) -> Iterator[TranscriptWord]:
        return iter(self.words)
