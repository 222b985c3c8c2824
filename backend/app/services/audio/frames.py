"""
Audio frame model.

One discrete chunk of captured meeting audio as it travels from the
ingest socket, through the queue, to the upstream provider.
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class AudioFrame:
    """A sequenced audio chunk; the payload is base64 audio and is never decoded here."""
    sequence_number: int
    payload: str
    duration_ms: Optional[int] = None
    language: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def age_ms(self) -> float:
        """Milliseconds since the frame was received."""
        return (time.time() - self.timestamp) * 1000
