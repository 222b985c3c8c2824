"""
Translation Module

This module contains the upstream half of the relay:
- TranslationBridge: realtime provider connection (handshake, audio, events)
- TranslationLogger: best-effort persistence of completed utterances
- UtteranceTracker / TranslationUtterance: utterance assembly

Usage:
    from app.services.translation import TranslationBridge, BridgeConfig
    from app.services.translation import get_translation_logger
"""

from app.services.translation.bridge import (
    BridgeConfig,
    BridgeEventSink,
    TranslationBridge,
    build_instructions,
)
from app.services.translation.logger import TranslationLogger, get_translation_logger
from app.services.translation.utterance import TranslationUtterance, UtteranceTracker

__all__ = [
    "BridgeConfig",
    "BridgeEventSink",
    "TranslationBridge",
    "build_instructions",
    "TranslationLogger",
    "get_translation_logger",
    "TranslationUtterance",
    "UtteranceTracker",
]
