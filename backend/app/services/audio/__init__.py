"""
Audio Module

This module contains the audio path of the relay:
- AudioFrame: one sequenced chunk of captured audio
- AudioFrameQueue: per-session FIFO with a single-consumer drain
- AudioChunkRecorder: background copy of forwarded frames

Usage:
    from app.services.audio import AudioFrame, AudioFrameQueue
"""

from app.services.audio.frames import AudioFrame
from app.services.audio.queue import AudioFrameQueue, FrameSink
from app.services.audio.recorder import AudioChunkRecorder, get_audio_chunk_recorder

__all__ = [
    "AudioFrame",
    "AudioFrameQueue",
    "FrameSink",
    "AudioChunkRecorder",
    "get_audio_chunk_recorder",
]
