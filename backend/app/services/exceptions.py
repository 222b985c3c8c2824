"""
Relay Exceptions

Custom exceptions for translation relay errors.

Local errors (bad input, unknown session, overload) are reported to the
client as an `error` event and leave the connection open. Upstream errors
are fatal to the session until an explicit restart.
"""


class RelayError(Exception):
    """Base exception for relay errors"""
    code = "relay_error"


class SessionNotFound(RelayError):
    """Raised when a session id has no Session Store record"""
    code = "session_not_found"


class NotInitialized(RelayError):
    """Raised when a command needs an initialized session and there is none"""
    code = "not_initialized"


class MalformedMessage(RelayError):
    """Raised when an inbound message fails to parse or validate"""
    code = "malformed_message"


class SessionBusy(RelayError):
    """Raised when another live relay already owns the session id"""
    code = "session_busy"


class QueueOverloaded(RelayError):
    """Raised when the audio queue is at its configured depth"""
    code = "overloaded"


class OutOfOrderFrame(RelayError):
    """Raised when a frame's sequence number goes backwards"""
    code = "out_of_order"


class UpstreamUnavailable(RelayError):
    """Raised when the upstream provider cannot be dialed (or the bridge is not open)"""
    code = "upstream_unavailable"


class UpstreamRuntimeError(RelayError):
    """Raised when the upstream provider fails mid-session"""
    code = "upstream_error"


class PersistenceFailure(RelayError):
    """Raised when a Session Store write fails"""
    code = "persistence_failure"


class QuotaExceeded(RelayError):
    """Raised when the entitlement provider reports no remaining quota"""
    code = "quota_exceeded"
