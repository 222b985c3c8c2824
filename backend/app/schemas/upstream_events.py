"""
Upstream Event Schemas

Typed views over the realtime provider's server events. Only the kinds
the bridge acts on get a model; everything else parses to
UnknownUpstreamEvent and is relayed verbatim.

Usage:
    from app.schemas.upstream_events import parse_upstream_event

    event = parse_upstream_event(json.loads(raw))
    if isinstance(event, AudioDelta):
        ...
"""

from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class UpstreamEvent(BaseModel):
    """Base model for provider events; keeps unknown fields for verbatim relay."""
    model_config = ConfigDict(extra="allow")

    type: str


class SessionCreated(UpstreamEvent):
    """Provider acknowledged the session; audio may flow."""
    type: Literal["session.created"] = "session.created"


class AudioDelta(UpstreamEvent):
    type: Literal["response.audio.delta"] = "response.audio.delta"
    delta: str


class TranscriptDelta(UpstreamEvent):
    type: Literal["response.audio_transcript.delta"] = "response.audio_transcript.delta"
    delta: str


class TranscriptDone(UpstreamEvent):
    type: Literal["response.audio_transcript.done"] = "response.audio_transcript.done"
    transcript: str = ""


class AudioDone(UpstreamEvent):
    """Turn-complete: the translated audio for one utterance is finished."""
    type: Literal["response.audio.done"] = "response.audio.done"


class InputTranscriptionCompleted(UpstreamEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"] = (
        "conversation.item.input_audio_transcription.completed"
    )
    transcript: str = ""


class SpeechStarted(UpstreamEvent):
    type: Literal["input_audio_buffer.speech_started"] = "input_audio_buffer.speech_started"


class SpeechStopped(UpstreamEvent):
    type: Literal["input_audio_buffer.speech_stopped"] = "input_audio_buffer.speech_stopped"


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None
    type: Optional[str] = None
    code: Optional[str] = None


class UpstreamErrorEvent(UpstreamEvent):
    type: Literal["error"] = "error"
    error: ErrorDetail = Field(default_factory=ErrorDetail)

    @property
    def message(self) -> str:
        return self.error.message or "Translation error"


class UnknownUpstreamEvent(UpstreamEvent):
    """Any event kind the bridge does not interpret."""


_EVENT_MODELS: Dict[str, Type[UpstreamEvent]] = {
    model.model_fields["type"].default: model
    for model in (
        SessionCreated,
        AudioDelta,
        TranscriptDelta,
        TranscriptDone,
        AudioDone,
        InputTranscriptionCompleted,
        SpeechStarted,
        SpeechStopped,
        UpstreamErrorEvent,
    )
}


def parse_upstream_event(data: Dict[str, Any]) -> UpstreamEvent:
    """
    Map a decoded provider message onto its event model.

    Events with an unknown kind, or a known kind whose payload does not
    match the model, come back as UnknownUpstreamEvent so they can still
    be relayed without being treated as fatal.
    """
    event_type = data.get("type")
    if not isinstance(event_type, str):
        return UnknownUpstreamEvent(type="unknown", **{k: v for k, v in data.items() if k != "type"})

    model = _EVENT_MODELS.get(event_type)
    if model is not None:
        try:
            return model.model_validate(data)
        except ValidationError:
            pass
    return UnknownUpstreamEvent.model_validate(data)
