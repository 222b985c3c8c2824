"""
WebSocket API module.

Provides the WebSocket router for the ingest and listener relay sockets.
"""
from .router import router

__all__ = ["router"]
