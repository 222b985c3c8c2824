"""
Database Models Package

This module exports all SQLAlchemy models for the Session Store.

Tables:
1. translation_sessions - One row per relay session (config + lifecycle status)
2. translation_logs - Completed utterances for analytics
3. audio_chunks - Forwarded audio frames for replay/debug
"""

from .database import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
)

from .translation_session import TranslationSession, SessionStatus, MeetingPlatform
from .translation_log import TranslationLog
from .audio_chunk import AudioChunk

__all__ = [
    # Database utilities
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",

    # Models
    "TranslationSession",
    "SessionStatus",
    "MeetingPlatform",
    "TranslationLog",
    "AudioChunk",
]
