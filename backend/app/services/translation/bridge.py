"""
Translation Bridge - Upstream realtime speech-to-speech connection.

Owns the second socket of a relay session: the one to the realtime
provider. It translates between the relay's vocabulary (AudioFrame,
RelayEvent) and the provider's wire protocol.

Architecture:
    AudioFrameQueue -> forward_frame() -> provider
    provider -> _listen() -> BridgeEventSink (RelaySession) -> client

Key Features:
- Configuration handshake (language pair, voice, codec, server VAD)
- In-place session.update for language/voice changes, no reconnect
- Utterance tracking so completed translations can be logged
- Idempotent close(); no automatic redial (restart is explicit)

Usage:
    bridge = TranslationBridge(session_id, BridgeConfig("en", "es", "alloy"), sink)
    await bridge.open()
    bridge.start(task_group.create_task)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Optional, Protocol, Union

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from app.config.settings import settings
from app.config.constants import (
    AUDIO_FORMAT,
    INPUT_TRANSCRIPTION_MODEL,
    LANGUAGE_NAMES,
    REALTIME_BETA_HEADER,
    REALTIME_MODALITIES,
    REALTIME_TEMPERATURE,
    UPSTREAM_OPEN_TIMEOUT_SEC,
    UPSTREAM_PING_INTERVAL_SEC,
    UPSTREAM_PING_TIMEOUT_SEC,
    VAD_PREFIX_PADDING_MS,
    VAD_SILENCE_DURATION_MS,
    VAD_THRESHOLD,
    VAD_TYPE,
)
from app.schemas.upstream_events import (
    AudioDelta,
    AudioDone,
    InputTranscriptionCompleted,
    SessionCreated,
    SpeechStarted,
    SpeechStopped,
    TranscriptDelta,
    TranscriptDone,
    UpstreamErrorEvent,
    UpstreamEvent,
    parse_upstream_event,
)
from app.schemas.websocket_events import (
    AiEvent,
    RelayEvent,
    TranscriptDeltaEvent,
    TranslatedAudioDeltaEvent,
    TranslationCompleteEvent,
)
from app.services.audio.frames import AudioFrame
from app.services.exceptions import UpstreamRuntimeError, UpstreamUnavailable
from app.services.metrics import frames_forwarded, upstream_errors
from app.services.protocols import UpstreamConnector, UpstreamSocketProtocol
from app.services.translation.utterance import TranslationUtterance, UtteranceTracker

logger = logging.getLogger(__name__)

Spawner = Callable[[Coroutine], "asyncio.Task"]


@dataclass
class BridgeConfig:
    """Session settings applied at handshake and on live updates."""
    source_language: str
    target_language: str
    voice_id: str


class BridgeEventSink(Protocol):
    """Receiver of everything the bridge learns from the provider (the RelaySession)."""

    async def on_upstream_ready(self, bridge: "TranslationBridge") -> None:
        ...

    async def on_relay_event(self, bridge: "TranslationBridge", event: RelayEvent) -> None:
        ...

    async def on_utterance(self, bridge: "TranslationBridge", utterance: TranslationUtterance) -> None:
        ...

    async def on_upstream_error(self, bridge: "TranslationBridge", message: str) -> None:
        ...

    async def on_upstream_closed(self, bridge: "TranslationBridge") -> None:
        ...


def language_name(code: str) -> str:
    """Display name for a language code ("es-MX" -> "Spanish"); unknown codes pass through."""
    base = code.split("-")[0].lower()
    return LANGUAGE_NAMES.get(base, code)


def build_instructions(source_language: str, target_language: str) -> str:
    """Translator instructions for the provider session."""
    source = language_name(source_language)
    target = language_name(target_language)
    return (
        "You are MeetingLingo, a real-time meeting translator. "
        f"Translate speech from {source} to {target}. "
        "Maintain the speaker's tone, intent, and meaning. "
        "Provide only the translation without commentary. "
        "Be natural and conversational in your translations."
    )


async def dial_realtime(url: str, headers: Dict[str, str]) -> UpstreamSocketProtocol:
    """Open the provider websocket."""
    return await connect(
        url,
        additional_headers=headers,
        ping_interval=UPSTREAM_PING_INTERVAL_SEC,
        ping_timeout=UPSTREAM_PING_TIMEOUT_SEC,
        open_timeout=UPSTREAM_OPEN_TIMEOUT_SEC,
    )


class TranslationBridge:
    """
    One upstream provider connection for one session.

    A bridge is single-use: once closed it cannot be reopened; a restart
    creates a new bridge.
    """

    def __init__(
        self,
        session_id: str,
        config: BridgeConfig,
        sink: BridgeEventSink,
        *,
        connector: Optional[UpstreamConnector] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model_label: Optional[str] = None,
    ):
        self.session_id = session_id
        self.config = config
        self._sink = sink
        self._connector = connector or dial_realtime
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._endpoint = endpoint or settings.realtime_endpoint
        self._model_label = model_label or settings.OPENAI_REALTIME_MODEL
        self._socket: Optional[UpstreamSocketProtocol] = None
        self._listener: Optional[asyncio.Task] = None
        self._closed = False
        self._utterance = UtteranceTracker(model_used=self._model_label)

    # === State ===

    @property
    def is_open(self) -> bool:
        return self._socket is not None and not self._closed

    @property
    def is_ready(self) -> bool:
        """Frames may be forwarded (FrameSink)."""
        return self.is_open

    @property
    def is_closed(self) -> bool:
        return self._closed

    # === Lifecycle ===

    def session_update_payload(self) -> Dict[str, Any]:
        """The full configuration handshake."""
        return {
            "type": "session.update",
            "session": {
                "modalities": REALTIME_MODALITIES,
                "instructions": build_instructions(
                    self.config.source_language, self.config.target_language
                ),
                "voice": self.config.voice_id,
                "input_audio_format": AUDIO_FORMAT,
                "output_audio_format": AUDIO_FORMAT,
                "input_audio_transcription": {"model": INPUT_TRANSCRIPTION_MODEL},
                "turn_detection": {
                    "type": VAD_TYPE,
                    "threshold": VAD_THRESHOLD,
                    "prefix_padding_ms": VAD_PREFIX_PADDING_MS,
                    "silence_duration_ms": VAD_SILENCE_DURATION_MS,
                },
                "temperature": REALTIME_TEMPERATURE,
                "max_response_output_tokens": "inf",
            },
        }

    async def open(self):
        """
        Dial the provider and send the configuration handshake.

        Raises:
            UpstreamUnavailable: missing credentials, dial failure, or the
                socket died before the handshake was sent
        """
        if self._closed:
            raise UpstreamUnavailable("Translation bridge already closed")
        if self._socket is not None:
            return

        if not self._api_key:
            upstream_errors.labels(kind="dial").inc()
            raise UpstreamUnavailable("OpenAI API key not configured")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": REALTIME_BETA_HEADER,
        }

        logger.info(f"[Bridge] {self.session_id} connecting to translation provider...")
        try:
            self._socket = await self._connector(self._endpoint, headers)
        except Exception as e:
            upstream_errors.labels(kind="dial").inc()
            logger.error(f"[Bridge] {self.session_id} dial failed: {e}")
            raise UpstreamUnavailable(f"Failed to connect to translation provider: {e}") from e

        try:
            await self._send(self.session_update_payload())
        except UpstreamRuntimeError as e:
            await self.close()
            raise UpstreamUnavailable(str(e)) from e

        logger.info(
            f"[Bridge] {self.session_id} connected "
            f"({self.config.source_language} -> {self.config.target_language}, voice={self.config.voice_id})"
        )

    def start(self, spawn: Spawner):
        """Start consuming provider events inside the caller's task scope."""
        if not self.is_open or self._listener is not None:
            return
        self._listener = spawn(self._listen())

    async def close(self):
        """Close the provider socket. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True

        listener = self._listener
        if listener is not None and listener is not asyncio.current_task() and not listener.done():
            listener.cancel()

        if self._socket is not None:
            try:
                await self._socket.close()
            except Exception as e:
                logger.debug(f"[Bridge] {self.session_id} error while closing socket: {e}")

        logger.info(f"[Bridge] {self.session_id} closed")

    # === Outbound ===

    async def _send(self, payload: Dict[str, Any]):
        if self._socket is None:
            raise UpstreamUnavailable("Translation bridge is not open")
        try:
            await self._socket.send(json.dumps(payload))
        except (ConnectionClosed, OSError) as e:
            raise UpstreamRuntimeError(f"Upstream connection lost: {e}") from e

    def _require_open(self):
        if not self.is_open:
            raise UpstreamUnavailable("Translation bridge is not open")

    async def forward_frame(self, frame: AudioFrame):
        """Append one frame to the provider's input buffer (no per-frame ack)."""
        self._require_open()
        await self._send({"type": "input_audio_buffer.append", "audio": frame.payload})
        frames_forwarded.inc()

    async def send_text(self, text: str):
        """Send typed input as a conversational turn and ask for a response."""
        self._require_open()
        self._utterance.speech_started()
        self._utterance.set_source_text(text)
        await self._send({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        })
        await self._send({"type": "response.create"})

    async def update_configuration(self, source_language: str, target_language: str):
        """Swap the language pair on the open connection."""
        self._require_open()
        self.config.source_language = source_language
        self.config.target_language = target_language
        await self._send({
            "type": "session.update",
            "session": {"instructions": build_instructions(source_language, target_language)},
        })
        logger.info(f"[Bridge] {self.session_id} languages updated: {source_language} -> {target_language}")

    async def update_voice(self, voice_id: str):
        """Swap the synthesis voice on the open connection."""
        self._require_open()
        self.config.voice_id = voice_id
        await self._send({"type": "session.update", "session": {"voice": voice_id}})
        logger.info(f"[Bridge] {self.session_id} voice updated: {voice_id}")

    # === Inbound ===

    async def _listen(self):
        try:
            async for raw in self._socket:
                if self._closed:
                    break
                await self._handle_raw(raw)
        except ConnectionClosed as e:
            if not self._closed:
                logger.warning(f"[Bridge] {self.session_id} provider closed the connection: {e}")
        except Exception as e:
            logger.error(f"[Bridge] {self.session_id} listener error: {e}")

        if not self._closed:
            upstream_errors.labels(kind="closed").inc()
            try:
                await self._sink.on_upstream_closed(self)
            except Exception as e:
                logger.error(f"[Bridge] {self.session_id} error reporting upstream close: {e}")

    async def _handle_raw(self, raw: Union[str, bytes]):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"[Bridge] {self.session_id} ignoring non-JSON provider message")
            return
        if not isinstance(data, dict):
            logger.warning(f"[Bridge] {self.session_id} ignoring non-object provider message")
            return

        event = parse_upstream_event(data)
        logger.debug(f"[Bridge] {self.session_id} provider event: {event.type}")
        try:
            await self._dispatch(event, data)
        except Exception as e:
            logger.error(f"[Bridge] {self.session_id} error handling {event.type}: {e}")

    async def _dispatch(self, event: UpstreamEvent, data: Dict[str, Any]):
        sink = self._sink

        if isinstance(event, SessionCreated):
            logger.info(f"[Bridge] {self.session_id} provider session created")
            await sink.on_upstream_ready(self)

        elif isinstance(event, AudioDelta):
            await sink.on_relay_event(self, TranslatedAudioDeltaEvent(audio=event.delta))

        elif isinstance(event, TranscriptDelta):
            self._utterance.add_translated_delta(event.delta)
            await sink.on_relay_event(self, TranscriptDeltaEvent(text=event.delta))

        elif isinstance(event, AudioDone):
            self._utterance.turn_complete()
            await sink.on_relay_event(self, TranslationCompleteEvent())
            await self._emit_utterance()

        elif isinstance(event, UpstreamErrorEvent):
            upstream_errors.labels(kind="runtime").inc()
            logger.error(f"[Bridge] {self.session_id} provider error: {event.message}")
            await sink.on_upstream_error(self, event.message)

        else:
            # Tracked internally, still relayed verbatim
            if isinstance(event, TranscriptDone):
                self._utterance.set_translated_text(event.transcript)
            elif isinstance(event, InputTranscriptionCompleted):
                self._utterance.set_source_text(event.transcript)
                await self._emit_utterance()
            elif isinstance(event, SpeechStarted):
                self._utterance.speech_started()
            elif isinstance(event, SpeechStopped):
                self._utterance.speech_stopped()
            await sink.on_relay_event(self, AiEvent(event=data))

    async def _emit_utterance(self):
        utterance = self._utterance.take(self.config.source_language, self.config.target_language)
        if utterance is not None:
            await self._sink.on_utterance(self, utterance)
