"""
Audio Chunk Recorder - Transient storage of forwarded frames.

Every frame the drain forwards upstream is copied to the audio_chunks
table in a background task, so replay and debugging never slow the
audio path. Like translation logs, a failed write is logged, counted
and dropped.
"""

import asyncio
import logging
from typing import Optional, Set

from app.config.settings import settings
from app.services.audio.frames import AudioFrame
from app.services.core.repositories import get_session_repository
from app.services.metrics import audio_chunk_failures
from app.services.protocols import SessionStoreProtocol

logger = logging.getLogger(__name__)


class AudioChunkRecorder:
    """Fire-and-forget writer for forwarded AudioFrames."""

    def __init__(self, store: Optional[SessionStoreProtocol] = None, enabled: Optional[bool] = None):
        self._store = store
        self.enabled = settings.STORE_AUDIO_CHUNKS if enabled is None else enabled
        self._pending: Set[asyncio.Task] = set()

    @property
    def store(self) -> SessionStoreProtocol:
        return self._store or get_session_repository()

    def record(self, session_id: str, frame: AudioFrame) -> bool:
        """Schedule a write; returns False when storage is disabled."""
        if not self.enabled:
            return False
        task = asyncio.create_task(self._write(session_id, frame))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _write(self, session_id: str, frame: AudioFrame):
        try:
            await self.store.add_audio_chunk(
                session_id,
                chunk_sequence=frame.sequence_number,
                audio_data=frame.payload,
                language=frame.language,
                duration_ms=frame.duration_ms,
            )
        except Exception as e:
            audio_chunk_failures.inc()
            logger.error(
                f"[AudioChunkRecorder] Error storing frame {frame.sequence_number} for {session_id}: {e}"
            )

    async def flush(self):
        """Wait for all scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Singleton instance
audio_chunk_recorder = AudioChunkRecorder()


def get_audio_chunk_recorder() -> AudioChunkRecorder:
    """Get the process-wide audio chunk recorder."""
    return audio_chunk_recorder
