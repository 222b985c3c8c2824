"""
TranslationSession Model - Relay Session Record

One row per live translation relay instance: where it runs, which
language pair and voice it uses, and where it is in its lifecycle.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Text
from datetime import datetime, UTC
from enum import Enum
import uuid

from .database import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class MeetingPlatform(str, Enum):
    ZOOM = "zoom"
    MEET = "meet"
    TEAMS = "teams"


class TranslationSession(Base):
    """Translation relay session model"""
    __tablename__ = "translation_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Meeting binding
    platform = Column(String(20), nullable=False)
    meeting_url = Column(Text, nullable=True)
    meeting_id = Column(String(64), nullable=True, index=True)

    # Translation configuration (mutable mid-session)
    source_language = Column(String(10), nullable=False)
    target_language = Column(String(10), nullable=False)
    voice_id = Column(String(32), nullable=False, default="alloy")

    # Status
    status = Column(String(20), nullable=False, default=SessionStatus.INITIALIZING.value, index=True)
    audio_processing_active = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    # Timing
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "platform": self.platform,
            "meeting_url": self.meeting_url,
            "meeting_id": self.meeting_id,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "voice_id": self.voice_id,
            "status": self.status,
            "audio_processing_active": self.audio_processing_active,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }
