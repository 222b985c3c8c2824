"""
Connection Management Module

Exports ConnectionManager, ClientConnection and the process-wide manager.
"""
from .models import ClientConnection
from .manager import ConnectionManager

# Singleton instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get the process-wide connection manager."""
    return connection_manager


__all__ = [
    "ClientConnection",
    "ConnectionManager",
    "connection_manager",
    "get_connection_manager",
]
