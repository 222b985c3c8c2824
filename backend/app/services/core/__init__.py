"""
Core Infrastructure Module

This module contains shared infrastructure components used across the relay:
- SessionRepository: Session Store access (sessions + translation logs)

Usage:
    from app.services.core import get_session_repository
"""

from app.services.core.repositories import SessionRepository, get_session_repository

__all__ = [
    "SessionRepository",
    "get_session_repository",
]
