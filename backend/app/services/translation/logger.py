"""
Translation Logger - Best-effort analytics persistence.

Writes each completed utterance to the Session Store in a background
task so the audio path never waits on the database. A failed write is
logged and counted, then dropped; it is never reported to the client.

Usage:
    from app.services.translation.logger import get_translation_logger

    get_translation_logger().record(session_id, utterance)
    await get_translation_logger().flush()  # on shutdown
"""

import asyncio
import logging
from typing import Optional, Set

from app.services.core.repositories import get_session_repository
from app.services.metrics import translation_log_failures, utterance_latency
from app.services.protocols import SessionStoreProtocol
from app.services.translation.utterance import TranslationUtterance

logger = logging.getLogger(__name__)


class TranslationLogger:
    """Fire-and-forget writer for TranslationUtterance records."""

    def __init__(self, store: Optional[SessionStoreProtocol] = None):
        self._store = store
        self._pending: Set[asyncio.Task] = set()

    @property
    def store(self) -> SessionStoreProtocol:
        return self._store or get_session_repository()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record(self, session_id: str, utterance: TranslationUtterance) -> bool:
        """
        Schedule a write for a completed utterance.

        Returns:
            False if the utterance lacks source or translated text and was skipped.
        """
        if not utterance.source_text.strip() or not utterance.translated_text.strip():
            logger.debug(f"[TranslationLogger] Skipping incomplete utterance for {session_id}")
            return False

        utterance_latency.labels(
            language_pair=f"{utterance.source_language}-{utterance.target_language}"
        ).observe(utterance.processing_time_ms / 1000)

        task = asyncio.create_task(self._write(session_id, utterance))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _write(self, session_id: str, utterance: TranslationUtterance):
        try:
            await self.store.add_translation_log(
                session_id,
                source_text=utterance.source_text,
                translated_text=utterance.translated_text,
                source_language=utterance.source_language,
                target_language=utterance.target_language,
                confidence_score=utterance.confidence_score,
                processing_time_ms=utterance.processing_time_ms,
                model_used=utterance.model_used,
            )
            logger.debug(f"[TranslationLogger] Stored utterance for {session_id}")
        except Exception as e:
            translation_log_failures.inc()
            logger.error(f"[TranslationLogger] Error logging translation for {session_id}: {e}")

    async def flush(self):
        """Wait for all scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Singleton instance
translation_logger = TranslationLogger()


def get_translation_logger() -> TranslationLogger:
    """Get the process-wide translation logger."""
    return translation_logger
