"""
Schemas Package

Pydantic models for the REST API, the ingest WebSocket and the
upstream provider's events.
"""

from app.schemas.websocket_events import (
    IngestCommand,
    RelayEvent,
    ErrorEvent,
    parse_ingest_command,
)
from app.schemas.upstream_events import UpstreamEvent, parse_upstream_event

__all__ = [
    "IngestCommand",
    "RelayEvent",
    "ErrorEvent",
    "parse_ingest_command",
    "UpstreamEvent",
    "parse_upstream_event",
]
