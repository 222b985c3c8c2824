"""
WebSocket Router - Realtime Translation Relay Endpoints

This is the thin routing layer that delegates to RelaySession for all
ingest handling and to the ConnectionManager for listeners.
"""
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.api.deps import get_bridge_factory, get_chunk_recorder, get_session_store
from app.services.audio import AudioChunkRecorder
from app.services.connection import ClientConnection, ConnectionManager, get_connection_manager
from app.services.protocols import SessionStoreProtocol
from app.services.session import RelaySession
from app.services.session.orchestrator import BridgeFactory
from app.services.translation import TranslationLogger, get_translation_logger

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/relay")
async def relay_endpoint(
    websocket: WebSocket,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager),
    translation_logger: TranslationLogger = Depends(get_translation_logger),
    chunk_recorder: AudioChunkRecorder = Depends(get_chunk_recorder),
    bridge_factory: BridgeFactory = Depends(get_bridge_factory)
):
    """
    Ingest endpoint: one meeting bot streams one session's audio.

    Message Types (JSON, client -> relay):
        - initialize: {sessionId} bind to a stored session and dial the provider
        - audio_chunk: {audioData, sequenceNumber?, language?, durationMs?}
        - text_message: {text}
        - update_languages: {sourceLanguage, targetLanguage}
        - update_voice: {voiceId}
        - stop / restart

    Every relay event is sent back on this socket; see
    app.schemas.websocket_events for the outbound vocabulary.
    """
    conn = ClientConnection(websocket, role="ingest")
    await conn.accept()

    relay = RelaySession(
        conn,
        store=store,
        manager=manager,
        translation_logger=translation_logger,
        chunk_recorder=chunk_recorder,
        bridge_factory=bridge_factory,
    )
    await relay.run()


@router.websocket("/ws/relay/{session_id}/listen")
async def listener_endpoint(
    websocket: WebSocket,
    session_id: str,
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """
    Listener endpoint: read-only fan-out of a session's relay events.

    Any other meeting participant can subscribe; inbound frames are ignored.
    """
    conn = await manager.connect_listener(websocket, session_id)
    try:
        while True:
            await conn.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect_listener(conn)
