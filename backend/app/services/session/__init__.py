"""
Session management module.

Provides RelaySession, the per-connection orchestrator, and the
session lifecycle state machine.
"""
from .orchestrator import RelaySession
from .state import can_transition

__all__ = ["RelaySession", "can_transition"]
