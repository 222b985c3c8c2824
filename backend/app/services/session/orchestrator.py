"""
Session Orchestrator - one relay per ingest connection.

RelaySession owns everything a single client connection needs:
- the client channel (ingest socket)
- the per-session AudioFrameQueue
- the current TranslationBridge (at most one open at a time)
- an asyncio.TaskGroup holding the upstream listener and queue drains

Leaving run() means both sockets are closed, every child task has
finished and the Session Store has been told how the session ended.

Usage:
    relay = RelaySession(ClientConnection(websocket))
    await relay.run()
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Coroutine, Optional

from fastapi import WebSocketDisconnect

from app.config.settings import settings
from app.models.translation_session import SessionStatus, TranslationSession, utcnow
from app.schemas.websocket_events import (
    AiConnectedEvent,
    AudioChunkCommand,
    ConnectedEvent,
    ErrorEvent,
    IngestCommandBase,
    InitializeCommand,
    InitializedEvent,
    LanguagesUpdatedEvent,
    RelayEvent,
    RestartCommand,
    SessionRestartedEvent,
    SessionStoppedEvent,
    StopCommand,
    TextMessageCommand,
    TranslationErrorEvent,
    UpdateLanguagesCommand,
    UpdateVoiceCommand,
    VoiceUpdatedEvent,
    parse_ingest_command,
)
from app.services.audio import AudioChunkRecorder, AudioFrame, AudioFrameQueue, get_audio_chunk_recorder
from app.services.connection import ConnectionManager, connection_manager
from app.services.core.repositories import get_session_repository
from app.services.exceptions import (
    NotInitialized,
    RelayError,
    SessionBusy,
    SessionNotFound,
    UpstreamUnavailable,
)
from app.services.metrics import frames_rejected
from app.services.protocols import ClientChannelProtocol, SessionStoreProtocol
from app.services.session.state import can_transition
from app.services.translation import (
    BridgeConfig,
    TranslationBridge,
    TranslationLogger,
    TranslationUtterance,
    get_translation_logger,
)

logger = logging.getLogger(__name__)

BridgeFactory = Callable[[str, BridgeConfig, Any], TranslationBridge]

UPSTREAM_CLOSED_MESSAGE = "Upstream connection closed"


class RelaySession:
    """
    Orchestrates one ingest connection and its upstream bridge.

    Control commands (initialize, update_*, stop, restart, and the
    upstream ready/error callbacks) are serialized by a lock; audio
    frames and relayed provider events are not.
    """

    def __init__(
        self,
        channel: ClientChannelProtocol,
        *,
        store: Optional[SessionStoreProtocol] = None,
        manager: Optional[ConnectionManager] = None,
        translation_logger: Optional[TranslationLogger] = None,
        chunk_recorder: Optional[AudioChunkRecorder] = None,
        bridge_factory: Optional[BridgeFactory] = None,
        max_queue_depth: Optional[int] = None,
    ):
        self.channel = channel
        self.relay_id = uuid.uuid4().hex[:8]
        self.session_id: Optional[str] = None

        self._store = store or get_session_repository()
        self._manager = manager or connection_manager
        self._translation_logger = translation_logger or get_translation_logger()
        self._chunk_recorder = chunk_recorder or get_audio_chunk_recorder()
        self._bridge_factory = bridge_factory or TranslationBridge

        if max_queue_depth is None:
            max_queue_depth = settings.AUDIO_QUEUE_MAX_DEPTH
        self._queue = AudioFrameQueue(
            spawn=self._spawn,
            max_depth=max_queue_depth,
            label=self.relay_id,
            on_forwarded=self._record_chunk,
        )

        self._lock = asyncio.Lock()
        self._task_group: Optional[asyncio.TaskGroup] = None
        self._bridge: Optional[TranslationBridge] = None
        self._config: Optional[BridgeConfig] = None
        self._status: Optional[SessionStatus] = None
        self._initialized = False
        self._cleaned_up = False

    # === Properties ===

    @property
    def status(self) -> Optional[SessionStatus]:
        """Last status this relay wrote to the Session Store."""
        return self._status

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def bridge(self) -> Optional[TranslationBridge]:
        return self._bridge

    @property
    def queue(self) -> AudioFrameQueue:
        return self._queue

    @property
    def _label(self) -> str:
        return self.session_id or f"relay-{self.relay_id}"

    # === Main Loop ===

    async def run(self):
        """Serve the ingest connection until it closes."""
        logger.info(f"[Relay] Connection {self.relay_id} opened")
        try:
            async with asyncio.TaskGroup() as tg:
                self._task_group = tg
                try:
                    await self._emit(ConnectedEvent())
                    await self._receive_loop()
                except WebSocketDisconnect:
                    logger.info(f"[Relay] {self._label} client disconnected")
                except Exception as e:
                    logger.error(f"[Relay] {self._label} error during receive loop: {e}")
                finally:
                    await self.cleanup()
                    self._release()
        finally:
            self._task_group = None
        logger.info(f"[Relay] Connection {self.relay_id} closed")

    async def _receive_loop(self):
        while True:
            raw = await self.channel.receive_text()
            await self.handle_message(raw)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        if self._task_group is None:
            coro.close()
            raise RuntimeError("Relay is not running")
        return self._task_group.create_task(coro)

    def _record_chunk(self, frame: AudioFrame):
        if self.session_id is not None:
            self._chunk_recorder.record(self.session_id, frame)

    def _release(self):
        if self.session_id is not None:
            self._manager.release_relay(self.session_id, self)

    # === Inbound Commands ===

    async def handle_message(self, raw: str):
        """
        Parse and execute one inbound frame.

        Local failures become an `error` event; the connection stays open.
        """
        try:
            command = parse_ingest_command(raw)
            await self._dispatch(command)
        except RelayError as e:
            logger.warning(f"[Relay] {self._label} rejected message ({e.code}): {e}")
            await self._emit(ErrorEvent(message=str(e), code=e.code))
        except Exception as e:
            logger.error(f"[Relay] {self._label} error handling message: {e}")
            await self._emit(ErrorEvent(message="Internal relay error", code="internal_error"))

    async def _dispatch(self, command: IngestCommandBase):
        if isinstance(command, AudioChunkCommand):
            self.submit_audio_frame(command)

        elif isinstance(command, InitializeCommand):
            await self.initialize(command.session_id)

        elif isinstance(command, TextMessageCommand):
            await self.submit_text_message(command.text)

        elif isinstance(command, UpdateLanguagesCommand):
            await self.update_languages(command.source_language, command.target_language)

        elif isinstance(command, UpdateVoiceCommand):
            await self.update_voice(command.voice_id)

        elif isinstance(command, StopCommand):
            await self.stop()

        elif isinstance(command, RestartCommand):
            await self.restart()

    async def initialize(self, session_id: str):
        """
        Bind this connection to a stored session and dial the provider.

        Raises:
            SessionBusy: this connection is already initialized, or another
                relay owns the session
            SessionNotFound: no such session in the Session Store
        """
        async with self._lock:
            if self._initialized:
                raise SessionBusy(f"Connection already initialized for session {self.session_id}")

            session = await self._store.get(session_id)
            if session is None:
                raise SessionNotFound(f"Session not found: {session_id}")

            self._manager.claim_relay(session_id, self)
            if self.session_id is not None and self.session_id != session_id:
                self._manager.release_relay(self.session_id, self)
            self.session_id = session_id

            logger.info(f"[Relay] {session_id} initializing on connection {self.relay_id}")
            opened = await self._begin_phase(session)
            if not opened:
                return

            await self._emit(InitializedEvent(session_id=session_id, status=self._status.value))
            self._bridge.start(self._spawn)

    def submit_audio_frame(self, command: AudioChunkCommand):
        """
        Enqueue one audio frame. Returns immediately.

        Raises:
            NotInitialized: no session bound yet (the frame is dropped)
            UpstreamUnavailable: the bridge failed or closed; restart first
            OutOfOrderFrame, QueueOverloaded: from the queue
        """
        if not self._initialized:
            frames_rejected.labels(reason="not_initialized").inc()
            raise NotInitialized("Session not initialized")

        bridge = self._bridge
        if self._status == SessionStatus.ERROR or bridge is None or bridge.is_closed:
            frames_rejected.labels(reason="upstream_unavailable").inc()
            raise UpstreamUnavailable("Translation session is not connected; restart to resume")

        sequence_number = command.sequence_number
        if sequence_number is None:
            sequence_number = self._queue.next_sequence_number

        frame = AudioFrame(
            sequence_number=sequence_number,
            payload=command.audio_data,
            duration_ms=command.duration_ms,
            language=command.language,
        )
        self._queue.enqueue(frame)
        logger.debug(f"[Relay] {self._label} queued frame {sequence_number} (depth {len(self._queue)})")

    async def submit_text_message(self, text: str):
        """Send typed text upstream as a conversational turn."""
        if not self._initialized:
            raise NotInitialized("Session not initialized")
        bridge = self._bridge
        if bridge is None or not bridge.is_open:
            raise UpstreamUnavailable("Translation bridge is not open")
        await bridge.send_text(text)

    async def update_languages(self, source_language: str, target_language: str):
        """
        Change the language pair.

        Always written to the Session Store; pushed to the provider in
        place only while the session is active.
        """
        async with self._lock:
            session_id = self._require_session()
            await self._store.update(
                session_id,
                source_language=source_language,
                target_language=target_language,
            )

            bridge = self._bridge
            if self._status == SessionStatus.ACTIVE and bridge is not None and bridge.is_open:
                await bridge.update_configuration(source_language, target_language)
            elif self._config is not None:
                self._config.source_language = source_language
                self._config.target_language = target_language

            logger.info(f"[Relay] {session_id} languages set to {source_language} -> {target_language}")
            await self._emit(LanguagesUpdatedEvent(
                source_language=source_language,
                target_language=target_language,
            ))

    async def update_voice(self, voice_id: str):
        """Change the synthesis voice (same rules as update_languages)."""
        async with self._lock:
            session_id = self._require_session()
            await self._store.update(session_id, voice_id=voice_id)

            bridge = self._bridge
            if self._status == SessionStatus.ACTIVE and bridge is not None and bridge.is_open:
                await bridge.update_voice(voice_id)
            elif self._config is not None:
                self._config.voice_id = voice_id

            logger.info(f"[Relay] {session_id} voice set to {voice_id}")
            await self._emit(VoiceUpdatedEvent(voice_id=voice_id))

    async def stop(self):
        """End the session. Repeating it only repeats the acknowledgement."""
        async with self._lock:
            await self._cleanup()
        await self._emit(SessionStoppedEvent())

    async def restart(self):
        """
        Start a new connecting phase for the same session with a fresh bridge.

        Raises:
            NotInitialized: this connection never bound a session
            SessionNotFound: the session disappeared from the store
        """
        async with self._lock:
            session_id = self._require_session()
            logger.info(f"[Relay] {session_id} restarting")

            previous = self._bridge
            if previous is not None:
                await previous.close()
            self._queue.clear()

            self._manager.claim_relay(session_id, self)
            session = await self._store.get(session_id)
            if session is None:
                raise SessionNotFound(f"Session not found: {session_id}")

            opened = await self._begin_phase(session)
            await self._emit(SessionRestartedEvent(session_id=session_id, status=self._status.value))
            if opened:
                self._bridge.start(self._spawn)

    async def cleanup(self):
        """Close the bridge and record the end of the session. Safe to call repeatedly."""
        async with self._lock:
            await self._cleanup()

    # === Bridge Callbacks ===

    async def on_upstream_ready(self, bridge: TranslationBridge):
        async with self._lock:
            if bridge is not self._bridge or bridge.is_closed:
                return
            if not await self._transition(SessionStatus.ACTIVE, audio_processing_active=True):
                return
            await self._emit(AiConnectedEvent())
        self._queue.kick()

    async def on_relay_event(self, bridge: TranslationBridge, event: RelayEvent):
        if bridge is not self._bridge:
            return
        await self._emit(event)

    async def on_utterance(self, bridge: TranslationBridge, utterance: TranslationUtterance):
        if bridge is not self._bridge or self.session_id is None:
            return
        self._translation_logger.record(self.session_id, utterance)

    async def on_upstream_error(self, bridge: TranslationBridge, message: str):
        async with self._lock:
            await self._fail(bridge, message)

    async def on_upstream_closed(self, bridge: TranslationBridge):
        async with self._lock:
            await self._fail(bridge, UPSTREAM_CLOSED_MESSAGE)

    # === Internals (lock held) ===

    def _require_session(self) -> str:
        if self.session_id is None:
            raise NotInitialized("Session not initialized")
        return self.session_id

    async def _begin_phase(self, session: TranslationSession) -> bool:
        """Write `connecting` and dial a new bridge. Returns False if the dial failed."""
        self._config = BridgeConfig(
            source_language=session.source_language,
            target_language=session.target_language,
            voice_id=session.voice_id or settings.DEFAULT_VOICE_ID,
        )
        self._status = SessionStatus(session.status)

        fields = {"error_message": None, "audio_processing_active": False, "ended_at": None}
        if session.started_at is None:
            fields["started_at"] = utcnow()
        await self._transition(SessionStatus.CONNECTING, **fields)

        self._initialized = True
        self._cleaned_up = False
        return await self._open_bridge()

    async def _open_bridge(self) -> bool:
        bridge = self._bridge_factory(self.session_id, self._config, self)
        self._bridge = bridge
        self._queue.attach(bridge)
        try:
            await bridge.open()
        except UpstreamUnavailable as e:
            await self._fail(bridge, str(e))
            return False
        return True

    async def _fail(self, bridge: TranslationBridge, message: str):
        """Fatal upstream failure for the current bridge: report, mark error, close."""
        if bridge is not self._bridge or self._cleaned_up:
            return

        logger.error(f"[Relay] {self._label} upstream failure: {message}")
        await self._emit(TranslationErrorEvent(error=message))
        try:
            await self._transition(
                SessionStatus.ERROR,
                error_message=message,
                audio_processing_active=False,
            )
        except Exception as e:
            logger.error(f"[Relay] {self._label} failed to record upstream failure: {e}")
            self._status = SessionStatus.ERROR
        await bridge.close()
        self._queue.clear()

    async def _cleanup(self):
        if self.session_id is None or self._cleaned_up:
            return
        self._cleaned_up = True
        self._initialized = False

        bridge = self._bridge
        self._bridge = None
        if bridge is not None:
            await bridge.close()
        self._queue.detach()
        self._queue.clear()

        ended_at = utcnow()
        try:
            if self._status == SessionStatus.ERROR:
                await self._store.update(
                    self.session_id,
                    audio_processing_active=False,
                    ended_at=ended_at,
                )
            else:
                await self._transition(
                    SessionStatus.DISCONNECTED,
                    audio_processing_active=False,
                    ended_at=ended_at,
                )
        except Exception as e:
            logger.error(f"[Relay] {self._label} failed to record session end: {e}")

        logger.info(f"[Relay] {self._label} cleaned up")

    async def _transition(self, target: SessionStatus, **fields: Any) -> bool:
        current = self._status
        if current is not None and not can_transition(current, target):
            logger.warning(f"[Relay] {self._label} ignoring transition {current.value} -> {target.value}")
            return False

        await self._store.update(self.session_id, status=target, **fields)
        self._status = target
        logger.info(
            f"[Relay] {self._label} {current.value if current else 'unknown'} -> {target.value}"
        )
        return True

    async def _emit(self, event: RelayEvent):
        payload = event.to_wire()
        await self.channel.send_json(payload)
        if event.broadcast and self.session_id is not None:
            await self._manager.broadcast_to_listeners(self.session_id, payload)
