"""
Protocol definitions for the relay's collaborators.

This module defines interfaces (Python Protocols) that allow:
- Swapping the Session Store (SQL in production, in-memory in tests)
- Testing the bridge without real provider credentials
- Clear contracts between the orchestrator, the bridge and the client socket

Usage:
    from app.services.protocols import SessionStoreProtocol

    async def stop(store: SessionStoreProtocol, session_id: str):
        await store.update(session_id, status="disconnected")
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from app.models.audio_chunk import AudioChunk
from app.models.translation_log import TranslationLog
from app.models.translation_session import TranslationSession


class SessionStoreProtocol(Protocol):
    """
    Interface for the Session Store.

    Every write is scoped to a single session id; no cross-session
    locking is expected from implementations.
    """

    async def get(self, session_id: str) -> Optional[TranslationSession]:
        """Return the session record, or None if it does not exist."""
        ...

    async def create(self, **fields: Any) -> TranslationSession:
        """Insert a new session record and return it."""
        ...

    async def update(self, session_id: str, **fields: Any) -> bool:
        """
        Apply column updates to one session.

        Returns:
            True if a row was updated, False if the id is unknown.
        """
        ...

    async def add_translation_log(self, session_id: str, **fields: Any) -> TranslationLog:
        """
        Persist one completed utterance.

        Raises:
            PersistenceFailure: if the write fails
        """
        ...

    async def add_audio_chunk(self, session_id: str, **fields: Any) -> AudioChunk:
        """
        Persist one forwarded audio frame.

        Raises:
            PersistenceFailure: if the write fails
        """
        ...

    async def recent_translation_logs(self, session_id: str, limit: int) -> List[TranslationLog]:
        """Newest-first translation logs for a session."""
        ...

    async def minutes_used_since(self, since: datetime) -> float:
        """Total minutes of sessions that started at or after `since` and have ended."""
        ...


class ClientChannelProtocol(Protocol):
    """
    The relay's view of one client socket.

    Implemented by ClientConnection over a FastAPI WebSocket.
    """

    async def receive_text(self) -> str:
        """Next inbound text frame; raises WebSocketDisconnect on close."""
        ...

    async def send_json(self, data: Dict[str, Any]) -> bool:
        """Send one event; returns False instead of raising on a dead socket."""
        ...


class UpstreamSocketProtocol(Protocol):
    """
    Minimal surface of the provider websocket used by the bridge.

    `websockets` client connections satisfy it; tests pass a fake.
    """

    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self):
        ...


UpstreamConnector = Callable[[str, Dict[str, str]], Awaitable[UpstreamSocketProtocol]]


class EntitlementProtocol(Protocol):
    """
    Interface for the payment/entitlement provider.

    Only a boolean "quota available" answer is consumed by the relay;
    require_quota() is the raising form used at session creation.
    """

    async def quota_available(self) -> bool:
        ...

    async def require_quota(self) -> None:
        """Raises QuotaExceeded when quota_available() is False."""
        ...
