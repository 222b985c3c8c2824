from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.translation_session import MeetingPlatform


class CreateSessionRequest(BaseModel):
    platform: MeetingPlatform
    source_language: str = Field(min_length=1, max_length=10)
    target_language: str = Field(min_length=1, max_length=10)
    voice_id: Optional[str] = None
    meeting_url: Optional[str] = None
    meeting_id: Optional[str] = None


class CreateSessionResponse(BaseModel):
    id: str
    status: str
    platform: str
    source_language: str
    target_language: str
    voice_id: str
    websocket_url: str


class TranslationLogItem(BaseModel):
    id: str
    source_text: str
    translated_text: str
    source_language: str
    target_language: str
    confidence_score: float
    processing_time_ms: int
    model_used: str
    created_at: Optional[str]


class SessionStatusResponse(BaseModel):
    id: str
    status: str
    platform: str
    source_language: str
    target_language: str
    voice_id: str
    audio_processing_active: bool
    error_message: Optional[str]
    started_at: Optional[str]
    ended_at: Optional[str]
    live: bool
    recent_translations: List[TranslationLogItem]


class UpdateLanguagesRequest(BaseModel):
    source_language: str = Field(min_length=1, max_length=10)
    target_language: str = Field(min_length=1, max_length=10)


class UpdateVoiceRequest(BaseModel):
    voice_id: str = Field(min_length=1, max_length=32)


class SessionActionResponse(BaseModel):
    success: bool
    message: str
    live: bool
