"""
AudioChunk Model - Forwarded Audio Frames

Transient copy of every frame the relay forwarded upstream, kept for
replay and debugging. Rows are written once, after the frame reached
the provider.
"""
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey
import uuid

from .database import Base
from .translation_session import utcnow


class AudioChunk(Base):
    """One forwarded audio frame"""
    __tablename__ = "audio_chunks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    session_id = Column(
        String(36),
        ForeignKey('translation_sessions.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    chunk_sequence = Column(Integer, nullable=False)
    audio_data = Column(Text, nullable=False)  # base64 PCM16, as received
    language = Column(String(10), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    processing_status = Column(String(20), nullable=False, default="forwarded")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "chunk_sequence": self.chunk_sequence,
            "language": self.language,
            "duration_ms": self.duration_ms,
            "processing_status": self.processing_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
