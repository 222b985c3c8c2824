"""
TranslationLog Model - Completed Utterances

Analytics record of every source -> target utterance the relay produced.
Rows are written once and never updated.
"""
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, ForeignKey
import uuid

from .database import Base
from .translation_session import utcnow


class TranslationLog(Base):
    """Completed utterance for a translation session"""
    __tablename__ = "translation_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    session_id = Column(
        String(36),
        ForeignKey('translation_sessions.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    # Content
    source_text = Column(Text, nullable=False)
    translated_text = Column(Text, nullable=False)

    # Language snapshot at completion time
    source_language = Column(String(10), nullable=False)
    target_language = Column(String(10), nullable=False)

    # Quality & timing
    confidence_score = Column(Float, nullable=False)
    processing_time_ms = Column(Integer, nullable=False, default=0)
    model_used = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "source_text": self.source_text,
            "translated_text": self.translated_text,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "confidence_score": self.confidence_score,
            "processing_time_ms": self.processing_time_ms,
            "model_used": self.model_used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
