"""
Utterance tracking for the Translation Bridge.

The provider reports one utterance as several independent events:
the speaker's transcript (input transcription), the translated
transcript (response transcript deltas / done) and the end of the
translated audio (turn-complete). The source transcription can land
either before or after turn-complete, so the tracker waits for both.
"""

import time
from dataclasses import dataclass
from typing import List, Optional

from app.config.constants import DEFAULT_CONFIDENCE_SCORE


@dataclass(frozen=True)
class TranslationUtterance:
    """One completed source -> target translation."""
    source_text: str
    translated_text: str
    source_language: str
    target_language: str
    confidence_score: float
    processing_time_ms: int
    model_used: str


class UtteranceTracker:
    """Accumulates the pieces of the current utterance."""

    def __init__(self, model_used: str):
        self.model_used = model_used
        self._reset()

    def _reset(self):
        self._source_text: Optional[str] = None
        self._translated_parts: List[str] = []
        self._translated_text: Optional[str] = None
        self._speech_stopped_at: Optional[float] = None
        self._turn_complete = False
        self._completed_at: Optional[float] = None

    @property
    def translated_text(self) -> str:
        if self._translated_text is not None:
            return self._translated_text
        return "".join(self._translated_parts)

    def speech_started(self):
        # A new turn abandons an utterance still waiting for its transcription
        if self._turn_complete or self._source_text is not None or self._translated_parts:
            self._reset()

    def speech_stopped(self):
        self._speech_stopped_at = time.monotonic()

    def set_source_text(self, text: str):
        self._source_text = text.strip()

    def add_translated_delta(self, delta: str):
        self._translated_parts.append(delta)

    def set_translated_text(self, text: str):
        self._translated_text = text

    def turn_complete(self):
        self._turn_complete = True
        self._completed_at = time.monotonic()

    def take(self, source_language: str, target_language: str) -> Optional[TranslationUtterance]:
        """
        Return the finished utterance and start a new one, or None if not finished.

        A turn that completed with no translated text (silence) or with an
        empty source transcription is discarded rather than returned.
        """
        if not self._turn_complete:
            return None

        translated = self.translated_text.strip()
        if not translated or self._source_text == "":
            self._reset()
            return None
        if self._source_text is None:
            # Still waiting for the input transcription
            return None

        processing_ms = 0
        if self._speech_stopped_at is not None and self._completed_at is not None:
            processing_ms = max(int((self._completed_at - self._speech_stopped_at) * 1000), 0)

        utterance = TranslationUtterance(
            source_text=self._source_text,
            translated_text=translated,
            source_language=source_language,
            target_language=target_language,
            confidence_score=DEFAULT_CONFIDENCE_SCORE,
            processing_time_ms=processing_ms,
            model_used=self.model_used,
        )
        self._reset()
        return utterance
