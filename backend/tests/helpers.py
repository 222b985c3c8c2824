"""
Test doubles for the relay's collaborators.

- FakeUpstream / FakeConnector: the realtime provider socket
- FakeClientChannel: the ingest socket as seen by RelaySession
- FakeWebSocket: a bare websocket for ClientConnection / listeners
- InMemorySessionStore: SessionStoreProtocol without a database
"""
import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import WebSocketDisconnect
from websockets.exceptions import ConnectionClosedOK

from app.models.audio_chunk import AudioChunk
from app.models.translation_log import TranslationLog
from app.models.translation_session import SessionStatus, TranslationSession, utcnow
from app.services.exceptions import PersistenceFailure

_CLOSE = object()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0):
    """Poll `predicate` until it is true or fail the test."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


class FakeUpstream:
    """
    Scripted stand-in for the provider websocket.

    Replies are queued from inside send(), so they are always produced on
    the event loop that owns the bridge.
    """

    def __init__(self, auto_session_created: bool = True, replies: Optional[Dict[str, List[dict]]] = None):
        self.auto_session_created = auto_session_created
        self.replies = replies or {}
        self.sent: List[dict] = []
        self.closed = False
        self.close_count = 0
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._created_sent = False

    async def send(self, message: str):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        data = json.loads(message)
        self.sent.append(data)

        if data["type"] == "session.update" and self.auto_session_created and not self._created_sent:
            self._created_sent = True
            self.push({"type": "session.created", "session": {"id": "sess_fake"}})
        for reply in self.replies.get(data["type"], []):
            self.push(reply)

    def push(self, event: dict):
        self._incoming.put_nowait(json.dumps(event))

    def drop(self):
        """Provider hangs up without the relay asking."""
        self._incoming.put_nowait(_CLOSE)

    async def close(self):
        self.close_count += 1
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    def sent_of_type(self, event_type: str) -> List[dict]:
        return [event for event in self.sent if event["type"] == event_type]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """UpstreamConnector that hands out FakeUpstream sockets (or fails)."""

    def __init__(self, fail_with: Optional[Exception] = None, **upstream_kwargs: Any):
        self.fail_with = fail_with
        self.upstream_kwargs = upstream_kwargs
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.upstreams: List[FakeUpstream] = []

    async def __call__(self, url: str, headers: Dict[str, str]) -> FakeUpstream:
        self.calls.append((url, headers))
        if self.fail_with is not None:
            raise self.fail_with
        upstream = FakeUpstream(**self.upstream_kwargs)
        self.upstreams.append(upstream)
        return upstream

    @property
    def latest(self) -> FakeUpstream:
        return self.upstreams[-1]


class FakeClientChannel:
    """ClientChannelProtocol backed by an in-memory inbox."""

    def __init__(self):
        self.sent: List[dict] = []
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, message: Any):
        """Queue one inbound frame (dicts are JSON-encoded)."""
        if not isinstance(message, str):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def disconnect(self):
        self._incoming.put_nowait(_CLOSE)

    async def receive_text(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSE:
            raise WebSocketDisconnect(1000)
        return item

    async def send_json(self, data: Dict[str, Any]) -> bool:
        self.sent.append(data)
        return True

    def types(self) -> List[str]:
        return [event["type"] for event in self.sent]

    def events(self, event_type: str) -> List[dict]:
        return [event for event in self.sent if event["type"] == event_type]

    async def wait_for(self, event_type: str, count: int = 1, timeout: float = 2.0) -> dict:
        """Wait until `count` events of `event_type` were sent; return the latest."""
        await wait_until(lambda: len(self.events(event_type)) >= count, timeout)
        return self.events(event_type)[-1]


class FakeWebSocket:
    """Just enough of a Starlette WebSocket for ClientConnection."""

    def __init__(self, fail_sends: bool = False):
        self.accepted = False
        self.sent: List[dict] = []
        self.fail_sends = fail_sends
        self.inbox: List[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data: Dict[str, Any]):
        if self.fail_sends:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)

    async def receive(self) -> dict:
        if self.inbox:
            return self.inbox.pop(0)
        return {"type": "websocket.disconnect", "code": 1000}


class InMemorySessionStore:
    """SessionStoreProtocol over dicts; records every update for assertions."""

    def __init__(self):
        self.sessions: Dict[str, TranslationSession] = {}
        self.logs: List[TranslationLog] = []
        self.chunks: List[AudioChunk] = []
        self.updates: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_logs = False
        self.fail_chunks = False

    def add(self, id: Optional[str] = None, **fields: Any) -> TranslationSession:
        values = {
            "id": id or str(uuid.uuid4()),
            "platform": "zoom",
            "meeting_url": None,
            "meeting_id": None,
            "source_language": "en",
            "target_language": "es",
            "voice_id": "alloy",
            "status": SessionStatus.INITIALIZING.value,
            "audio_processing_active": False,
            "error_message": None,
            "started_at": None,
            "ended_at": None,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }
        values.update({key: getattr(value, "value", value) for key, value in fields.items()})
        session = TranslationSession(**values)
        self.sessions[session.id] = session
        return session

    def status_updates(self, session_id: str) -> List[str]:
        return [
            getattr(fields["status"], "value", fields["status"])
            for sid, fields in self.updates
            if sid == session_id and "status" in fields
        ]

    async def get(self, session_id: str) -> Optional[TranslationSession]:
        return self.sessions.get(session_id)

    async def create(self, **fields: Any) -> TranslationSession:
        return self.add(**fields)

    async def update(self, session_id: str, **fields: Any) -> bool:
        session = self.sessions.get(session_id)
        if session is None:
            return False
        self.updates.append((session_id, dict(fields)))
        for key, value in fields.items():
            setattr(session, key, getattr(value, "value", value))
        return True

    async def add_translation_log(self, session_id: str, **fields: Any) -> TranslationLog:
        if self.fail_logs:
            raise PersistenceFailure("Failed to store translation log: database is locked")
        fields.setdefault("created_at", utcnow())
        log = TranslationLog(id=str(uuid.uuid4()), session_id=session_id, **fields)
        self.logs.append(log)
        return log

    async def add_audio_chunk(self, session_id: str, **fields: Any) -> AudioChunk:
        if self.fail_chunks:
            raise PersistenceFailure("Failed to store audio chunk: disk full")
        chunk = AudioChunk(id=str(uuid.uuid4()), session_id=session_id, **fields)
        self.chunks.append(chunk)
        return chunk

    async def recent_translation_logs(self, session_id: str, limit: int) -> List[TranslationLog]:
        logs = [log for log in self.logs if log.session_id == session_id]
        logs.sort(key=lambda log: log.created_at, reverse=True)
        return logs[:limit]

    async def minutes_used_since(self, since: datetime) -> float:
        seconds = sum(
            (session.ended_at - session.started_at).total_seconds()
            for session in self.sessions.values()
            if session.started_at is not None
            and session.ended_at is not None
            and session.started_at >= since
        )
        return seconds / 60.0
