"""
WebSocket Event Schemas

Pydantic models for the two directions of the ingest channel:
- IngestCommand: closed union of everything a client may send
- RelayEvent subclasses: everything the relay sends back

Field names on the wire are camelCase (sessionId, audioData, ...);
Python code uses snake_case through aliases.
"""

import json
from typing import Annotated, Any, ClassVar, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.services.exceptions import MalformedMessage


# =============================================================================
# Ingest Commands (client -> relay)
# =============================================================================

class IngestCommandBase(BaseModel):
    """Base model for all inbound commands."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str


class InitializeCommand(IngestCommandBase):
    """Bind this connection to a stored session and dial the provider."""
    type: Literal["initialize"] = "initialize"
    session_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("sessionId", "botSessionId", "session_id"),
        serialization_alias="sessionId",
    )


class AudioChunkCommand(IngestCommandBase):
    """One captured audio frame (base64 payload)."""
    type: Literal["audio_chunk"] = "audio_chunk"
    audio_data: str = Field(min_length=1, alias="audioData")
    sequence_number: Optional[int] = Field(None, ge=0, alias="sequenceNumber")
    language: Optional[str] = None
    duration_ms: Optional[int] = Field(None, ge=0, alias="durationMs")


class TextMessageCommand(IngestCommandBase):
    """Typed input translated as a synthetic conversational turn."""
    type: Literal["text_message"] = "text_message"
    text: str = Field(min_length=1)


class UpdateLanguagesCommand(IngestCommandBase):
    type: Literal["update_languages"] = "update_languages"
    source_language: str = Field(min_length=1, alias="sourceLanguage")
    target_language: str = Field(min_length=1, alias="targetLanguage")


class UpdateVoiceCommand(IngestCommandBase):
    type: Literal["update_voice"] = "update_voice"
    voice_id: str = Field(min_length=1, alias="voiceId")


class StopCommand(IngestCommandBase):
    type: Literal["stop"] = "stop"


class RestartCommand(IngestCommandBase):
    type: Literal["restart"] = "restart"


IngestCommand = Annotated[
    Union[
        InitializeCommand,
        AudioChunkCommand,
        TextMessageCommand,
        UpdateLanguagesCommand,
        UpdateVoiceCommand,
        StopCommand,
        RestartCommand,
    ],
    Field(discriminator="type"),
]

_ingest_adapter = TypeAdapter(IngestCommand)

INGEST_COMMAND_TYPES = frozenset({
    "initialize",
    "audio_chunk",
    "text_message",
    "update_languages",
    "update_voice",
    "stop",
    "restart",
})


def parse_ingest_command(raw: str) -> IngestCommandBase:
    """
    Parse one inbound text frame into a typed command.

    Raises:
        MalformedMessage: invalid JSON, unknown type, or missing/invalid fields.
            The message is suitable for sending back to the client.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise MalformedMessage("Invalid JSON message")

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise MalformedMessage("Message must be an object with a string 'type'")

    msg_type = data["type"]
    if msg_type not in INGEST_COMMAND_TYPES:
        raise MalformedMessage(f"Unknown message type: {msg_type}")

    try:
        return _ingest_adapter.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())[1:])
        detail = f"{location}: {first['msg']}" if location else first["msg"]
        raise MalformedMessage(f"Invalid {msg_type} message ({detail})")


# =============================================================================
# Relay Events (relay -> client)
# =============================================================================

class RelayEvent(BaseModel):
    """Base model for all outbound events."""
    model_config = ConfigDict(populate_by_name=True)

    type: str

    # Local-only events never reach listener sockets
    broadcast: ClassVar[bool] = True

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ConnectedEvent(RelayEvent):
    type: Literal["connected"] = "connected"
    message: str = "MeetingLingo realtime translator ready"
    broadcast: ClassVar[bool] = False


class InitializedEvent(RelayEvent):
    type: Literal["initialized"] = "initialized"
    session_id: str = Field(alias="sessionId")
    status: str
    broadcast: ClassVar[bool] = False


class AiConnectedEvent(RelayEvent):
    type: Literal["ai_connected"] = "ai_connected"
    message: str = "AI translator ready"


class TranslatedAudioDeltaEvent(RelayEvent):
    type: Literal["translated_audio_delta"] = "translated_audio_delta"
    audio: str


class TranscriptDeltaEvent(RelayEvent):
    type: Literal["transcript_delta"] = "transcript_delta"
    text: str


class TranslationCompleteEvent(RelayEvent):
    type: Literal["translation_complete"] = "translation_complete"


class TranslationErrorEvent(RelayEvent):
    type: Literal["translation_error"] = "translation_error"
    error: str


class LanguagesUpdatedEvent(RelayEvent):
    type: Literal["languages_updated"] = "languages_updated"
    source_language: str = Field(alias="sourceLanguage")
    target_language: str = Field(alias="targetLanguage")


class VoiceUpdatedEvent(RelayEvent):
    type: Literal["voice_updated"] = "voice_updated"
    voice_id: str = Field(alias="voiceId")


class SessionStoppedEvent(RelayEvent):
    type: Literal["session_stopped"] = "session_stopped"
    message: str = "Translation session ended"


class SessionRestartedEvent(RelayEvent):
    type: Literal["session_restarted"] = "session_restarted"
    session_id: str = Field(alias="sessionId")
    status: str


class AiEvent(RelayEvent):
    """Upstream event relayed verbatim for observability."""
    type: Literal["ai_event"] = "ai_event"
    event: Dict[str, Any]


class ErrorEvent(RelayEvent):
    """Malformed input or local fault; the connection stays open."""
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None
    broadcast: ClassVar[bool] = False
