"""
Connection Manager

Process-wide registry of relay connections:
- Relay ownership (at most one live relay per session id)
- Listener connections for multi-party fan-out
- Message broadcasting to a session's listeners
"""
import asyncio
from typing import Dict, List, Optional, Any, TYPE_CHECKING
import logging

from fastapi import WebSocket

from app.services.exceptions import SessionBusy
from app.services.metrics import active_sessions_gauge
from .models import ClientConnection

if TYPE_CHECKING:
    from app.services.session.orchestrator import RelaySession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages all relay and listener connections across sessions.

    Provides methods for:
    - Claiming/releasing a session id for a relay
    - Looking up the live relay (REST control actions route through it)
    - Connecting/disconnecting listeners and broadcasting to them
    """

    def __init__(self):
        # session_id -> RelaySession owning the upstream bridge
        self._relays: Dict[str, "RelaySession"] = {}
        # session_id -> {connection_id: ClientConnection}
        self._listeners: Dict[str, Dict[str, ClientConnection]] = {}
        # Lock for listener registration
        self._lock = asyncio.Lock()

    # === Relay Ownership ===

    def claim_relay(self, session_id: str, relay: "RelaySession"):
        """
        Register `relay` as the owner of `session_id`.

        Re-claiming by the current owner is a no-op.

        Raises:
            SessionBusy: another relay already owns the session
        """
        owner = self._relays.get(session_id)
        if owner is relay:
            return
        if owner is not None:
            raise SessionBusy(f"Session {session_id} is already connected on another relay")

        self._relays[session_id] = relay
        active_sessions_gauge.inc()
        logger.info(f"[ConnectionManager] Relay claimed session {session_id}")

    def release_relay(self, session_id: str, relay: "RelaySession"):
        """Drop ownership if `relay` still owns the session."""
        if self._relays.get(session_id) is not relay:
            return
        del self._relays[session_id]
        active_sessions_gauge.dec()
        logger.info(f"[ConnectionManager] Relay released session {session_id}")

    def get_relay(self, session_id: str) -> Optional["RelaySession"]:
        """Get the live relay for a session, if any."""
        return self._relays.get(session_id)

    # === Listener Connections ===

    async def connect_listener(self, websocket: WebSocket, session_id: str) -> ClientConnection:
        """Accept and register a read-only listener socket."""
        conn = ClientConnection(websocket, role="listener", session_id=session_id)
        async with self._lock:
            self._listeners.setdefault(session_id, {})[conn.connection_id] = conn

        await conn.accept()

        logger.info(f"[ConnectionManager] Listener {conn.connection_id} joined session {session_id}")
        return conn

    async def disconnect_listener(self, conn: ClientConnection):
        """Remove a listener connection."""
        async with self._lock:
            listeners = self._listeners.get(conn.session_id)
            if listeners is not None:
                listeners.pop(conn.connection_id, None)
                if not listeners:
                    del self._listeners[conn.session_id]

        logger.info(f"[ConnectionManager] Listener {conn.connection_id} left session {conn.session_id}")

    # === Broadcast Methods ===

    async def broadcast_to_listeners(self, session_id: str, message: Dict[str, Any]) -> int:
        """Send a JSON message to all listeners of a session."""
        if session_id not in self._listeners:
            return 0

        sent_count = 0
        connections = list(self._listeners[session_id].values())

        for conn in connections:
            if await conn.send_json(message):
                sent_count += 1

        return sent_count

    # === Query Methods ===

    def get_listener_ids(self, session_id: str) -> List[str]:
        return list(self._listeners.get(session_id, {}).keys())

    def get_listener_count(self, session_id: str) -> int:
        return len(self._listeners.get(session_id, {}))

    def get_active_session_count(self) -> int:
        """Get number of sessions with a live relay."""
        return len(self._relays)

    def get_total_connections(self) -> int:
        """Get total number of relay and listener connections."""
        return len(self._relays) + sum(len(conns) for conns in self._listeners.values())
