"""
API dependencies.

Collaborators the routers need are resolved through dependencies so
tests can swap them with app.dependency_overrides.
"""
from app.services.core.repositories import get_session_repository
from app.services.entitlements import get_entitlements
from app.services.audio import AudioChunkRecorder, get_audio_chunk_recorder
from app.services.protocols import EntitlementProtocol, SessionStoreProtocol
from app.services.session.orchestrator import BridgeFactory
from app.services.translation import TranslationBridge


def get_session_store() -> SessionStoreProtocol:
    return get_session_repository()


def get_entitlement_provider() -> EntitlementProtocol:
    return get_entitlements()


def get_chunk_recorder() -> AudioChunkRecorder:
    return get_audio_chunk_recorder()


def get_bridge_factory() -> BridgeFactory:
    """How relays build their upstream bridge."""
    return TranslationBridge
