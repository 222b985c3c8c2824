"""
Application-wide constants for configuration and tuning.

This file centralizes all magic numbers and configuration values
to enable easy tuning and maintain consistency across the relay.

Note: Environment-dependent settings (DB, API keys, queue limits) belong in settings.py.
This file is for operational parameters that rarely change between environments.
"""

# ==============================================================================
# AUDIO QUEUE
# ==============================================================================

# Pause between forwarded frames so the upstream socket is not flooded (seconds)
AUDIO_DRAIN_PAUSE_SEC: float = 0.01

# Audio codec negotiated with the upstream provider (both directions)
AUDIO_FORMAT: str = "pcm16"

# ==============================================================================
# UPSTREAM REALTIME SESSION
# ==============================================================================

# Output modalities requested from the provider
REALTIME_MODALITIES: list[str] = ["text", "audio"]

# Model used by the provider to transcribe the incoming speech
INPUT_TRANSCRIPTION_MODEL: str = "whisper-1"

# Server-side voice activity detection
VAD_TYPE: str = "server_vad"
VAD_THRESHOLD: float = 0.5
VAD_PREFIX_PADDING_MS: int = 300
VAD_SILENCE_DURATION_MS: int = 1000

# Sampling temperature for translated responses (provider minimum is 0.6)
REALTIME_TEMPERATURE: float = 0.6

# Beta header required by the realtime endpoint
REALTIME_BETA_HEADER: str = "realtime=v1"

# Keepalive for the upstream socket (seconds)
UPSTREAM_PING_INTERVAL_SEC: float = 20.0
UPSTREAM_PING_TIMEOUT_SEC: float = 20.0

# Max time to establish the upstream socket (seconds)
UPSTREAM_OPEN_TIMEOUT_SEC: float = 10.0

# ==============================================================================
# TRANSLATION LOGGING
# ==============================================================================

# The realtime provider reports no confidence, so logs carry this default
DEFAULT_CONFIDENCE_SCORE: float = 0.95

# Number of recent translations returned with a session status
RECENT_TRANSLATIONS_LIMIT: int = 10

# ==============================================================================
# DATABASE CONNECTION POOL
# ==============================================================================

# SQLAlchemy connection pool size
DB_POOL_SIZE: int = 10

# SQLAlchemy max overflow connections
DB_POOL_MAX_OVERFLOW: int = 20

# ==============================================================================
# MEETING PLATFORMS & LANGUAGES
# ==============================================================================

# Meeting platforms a session may be bound to
SUPPORTED_PLATFORMS: list[str] = ["zoom", "meet", "teams"]

# Language code -> display name used in provider instructions
LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "ru": "Russian",
    "he": "Hebrew",
    "ar": "Arabic",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "hi": "Hindi",
}
