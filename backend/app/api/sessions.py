"""
Sessions API - Endpoints for translation session management

Implements:
- Session creation behind the monthly quota gate
- Status retrieval with the most recent translations
- Control actions (stop, restart, languages, voice)

Control actions go through the live relay when this process has one
for the session, so the provider sees the change immediately; otherwise
the Session Store is updated directly and the next relay picks it up.
"""
from datetime import datetime, UTC
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_entitlement_provider, get_session_store
from app.config.constants import RECENT_TRANSLATIONS_LIMIT
from app.config.settings import settings
from app.models.translation_session import SessionStatus, TranslationSession
from app.schemas.session import (
    CreateSessionRequest,
    CreateSessionResponse,
    SessionActionResponse,
    SessionStatusResponse,
    TranslationLogItem,
    UpdateLanguagesRequest,
    UpdateVoiceRequest,
)
from app.services.connection import ConnectionManager, get_connection_manager
from app.services.exceptions import (
    NotInitialized,
    QuotaExceeded,
    RelayError,
    SessionBusy,
    SessionNotFound,
    UpstreamRuntimeError,
    UpstreamUnavailable,
)
from app.services.protocols import EntitlementProtocol, SessionStoreProtocol
from app.services.session.state import can_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _relay_error_to_http(e: RelayError) -> HTTPException:
    if isinstance(e, QuotaExceeded):
        return HTTPException(status_code=402, detail=str(e))
    if isinstance(e, SessionNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (SessionBusy, NotInitialized)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (UpstreamUnavailable, UpstreamRuntimeError)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


async def _get_session_or_404(store: SessionStoreProtocol, session_id: str) -> TranslationSession:
    session = await store.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _websocket_url(request: Request) -> str:
    scheme = "wss" if request.url.scheme == "https" else "ws"
    return f"{scheme}://{request.url.netloc}/ws/relay"


@router.post("", response_model=CreateSessionResponse, status_code=201)
async def create_session(
    req: CreateSessionRequest,
    request: Request,
    store: SessionStoreProtocol = Depends(get_session_store),
    entitlements: EntitlementProtocol = Depends(get_entitlement_provider)
):
    """
    Create a translation session in `initializing` state.

    The client then opens /ws/relay and sends `initialize` with the id.
    """
    try:
        await entitlements.require_quota()
    except QuotaExceeded as e:
        raise _relay_error_to_http(e)

    session = await store.create(
        platform=req.platform.value,
        meeting_url=req.meeting_url,
        meeting_id=req.meeting_id,
        source_language=req.source_language,
        target_language=req.target_language,
        voice_id=req.voice_id or settings.DEFAULT_VOICE_ID,
        status=SessionStatus.INITIALIZING.value,
    )
    logger.info(f"[SessionsAPI] Created session {session.id} on {session.platform}")

    return CreateSessionResponse(
        id=session.id,
        status=session.status,
        platform=session.platform,
        source_language=session.source_language,
        target_language=session.target_language,
        voice_id=session.voice_id,
        websocket_url=_websocket_url(request),
    )


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session(
    session_id: str,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """Get session status and its most recent translations."""
    session = await _get_session_or_404(store, session_id)
    logs = await store.recent_translation_logs(session_id, RECENT_TRANSLATIONS_LIMIT)

    data = session.to_dict()
    return SessionStatusResponse(
        id=data["id"],
        status=data["status"],
        platform=data["platform"],
        source_language=data["source_language"],
        target_language=data["target_language"],
        voice_id=data["voice_id"],
        audio_processing_active=bool(data["audio_processing_active"]),
        error_message=data["error_message"],
        started_at=data["started_at"],
        ended_at=data["ended_at"],
        live=manager.get_relay(session_id) is not None,
        recent_translations=[TranslationLogItem(**log.to_dict()) for log in logs],
    )


@router.post("/{session_id}/stop", response_model=SessionActionResponse)
async def stop_session(
    session_id: str,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """Stop a session (live relay cleanup, or a direct store update)."""
    session = await _get_session_or_404(store, session_id)

    relay = manager.get_relay(session_id)
    if relay is not None:
        try:
            await relay.stop()
        except RelayError as e:
            raise _relay_error_to_http(e)
        return SessionActionResponse(success=True, message="Session stopped", live=True)

    fields = {"audio_processing_active": False, "ended_at": datetime.now(UTC)}
    if can_transition(SessionStatus(session.status), SessionStatus.DISCONNECTED):
        fields["status"] = SessionStatus.DISCONNECTED
    await store.update(session_id, **fields)
    return SessionActionResponse(success=True, message="Session stopped", live=False)


@router.post("/{session_id}/restart", response_model=SessionActionResponse)
async def restart_session(
    session_id: str,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """
    Restart a session.

    Without a live relay the session is put back into `connecting`; the
    bot's next `initialize` dials the provider.
    """
    await _get_session_or_404(store, session_id)

    relay = manager.get_relay(session_id)
    if relay is not None:
        try:
            await relay.restart()
        except RelayError as e:
            raise _relay_error_to_http(e)
        return SessionActionResponse(success=True, message="Session restarting", live=True)

    await store.update(
        session_id,
        status=SessionStatus.CONNECTING,
        error_message=None,
        audio_processing_active=False,
        ended_at=None,
    )
    return SessionActionResponse(success=True, message="Session restarting", live=False)


@router.post("/{session_id}/languages", response_model=SessionActionResponse)
async def update_languages(
    session_id: str,
    req: UpdateLanguagesRequest,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """Change the language pair."""
    await _get_session_or_404(store, session_id)

    relay = manager.get_relay(session_id)
    if relay is not None:
        try:
            await relay.update_languages(req.source_language, req.target_language)
        except RelayError as e:
            raise _relay_error_to_http(e)
        return SessionActionResponse(success=True, message="Languages updated", live=True)

    await store.update(
        session_id,
        source_language=req.source_language,
        target_language=req.target_language,
    )
    return SessionActionResponse(success=True, message="Languages updated", live=False)


@router.post("/{session_id}/voice", response_model=SessionActionResponse)
async def update_voice(
    session_id: str,
    req: UpdateVoiceRequest,
    store: SessionStoreProtocol = Depends(get_session_store),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """Change the synthesis voice."""
    await _get_session_or_404(store, session_id)

    relay = manager.get_relay(session_id)
    if relay is not None:
        try:
            await relay.update_voice(req.voice_id)
        except RelayError as e:
            raise _relay_error_to_http(e)
        return SessionActionResponse(success=True, message="Voice updated", live=True)

    await store.update(session_id, voice_id=req.voice_id)
    return SessionActionResponse(success=True, message="Voice updated", live=False)
