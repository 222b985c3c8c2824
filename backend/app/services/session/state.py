"""
Session lifecycle state machine.

    initializing -> connecting -> active -> {disconnected | error}

Any state may re-enter `connecting`; that is how initialize (on a fresh
connection) and restart begin a new phase. Otherwise `error` is terminal.
"""

from typing import Dict, FrozenSet

from app.models.translation_session import SessionStatus

ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.INITIALIZING: frozenset({
        SessionStatus.CONNECTING,
        SessionStatus.DISCONNECTED,
        SessionStatus.ERROR,
    }),
    SessionStatus.CONNECTING: frozenset({
        SessionStatus.CONNECTING,
        SessionStatus.ACTIVE,
        SessionStatus.DISCONNECTED,
        SessionStatus.ERROR,
    }),
    SessionStatus.ACTIVE: frozenset({
        SessionStatus.CONNECTING,
        SessionStatus.DISCONNECTED,
        SessionStatus.ERROR,
    }),
    SessionStatus.DISCONNECTED: frozenset({SessionStatus.CONNECTING}),
    SessionStatus.ERROR: frozenset({SessionStatus.CONNECTING}),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
